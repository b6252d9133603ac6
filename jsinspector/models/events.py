"""Pydantic models for host lifecycle events and inbound messages.

Events mirror the shape of the browser's request-lifecycle callbacks;
messages are the ad hoc RPC sent by collaborator UIs and the in-page
violation listener.  All accept camelCase keys.
"""

from __future__ import annotations

from typing import Annotated, Literal

import pydantic

from jsinspector.utils.serialization import snake_to_camel

TOP_LEVEL_FRAME = 0
NO_TAB = -1


class _HostModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        alias_generator=snake_to_camel, populate_by_name=True
    )


# ── Lifecycle events ────────────────────────────────────────────


class NavigationCommitted(_HostModel):
    tab_id: int
    url: str
    frame_id: int = TOP_LEVEL_FRAME


class BeforeRequest(_HostModel):
    request_id: str
    url: str
    tab_id: int = NO_TAB
    type: str = "other"


class HttpHeader(_HostModel):
    name: str | None = None
    value: str | list[str] | None = None


class HeadersReceived(_HostModel):
    request_id: str
    url: str = ""
    tab_id: int = NO_TAB
    type: str = "other"
    status_code: int | None = None
    response_headers: list[HttpHeader] = pydantic.Field(default_factory=list)

    def header_map(self) -> dict[str, str]:
        """Lower-cased header name → value, multi-values joined by comma."""
        headers: dict[str, str] = {}
        for header in self.response_headers:
            if not header.name:
                continue
            value = header.value
            if isinstance(value, list):
                value = ",".join(value)
            headers[header.name.lower()] = value or ""
        return headers


class RequestCompleted(_HostModel):
    request_id: str
    url: str = ""
    tab_id: int = NO_TAB
    type: str = "other"
    status_code: int = 0


class RequestErrored(_HostModel):
    request_id: str
    url: str = ""
    tab_id: int = NO_TAB
    type: str = "other"
    error: str = ""


# ── Inbound messages ────────────────────────────────────────────


class CspViolationPayload(_HostModel):
    blocked_uri: str | None = pydantic.Field(default=None, alias="blockedURI")
    effective_directive: str | None = None
    violated_directive: str | None = None
    original_policy: str | None = None
    source_file: str | None = None
    line_number: int | None = None
    column_number: int | None = None


class CspViolationMessage(_HostModel):
    type: Literal["csp-violation"]
    payload: CspViolationPayload = pydantic.Field(default_factory=CspViolationPayload)


class GetStateMessage(_HostModel):
    type: Literal["get-state"]
    tab_id: int | None = None


class SetIgnoreDomainMessage(_HostModel):
    type: Literal["set-ignore-domain"]
    domain: str = ""


InboundMessage = Annotated[
    CspViolationMessage | GetStateMessage | SetIgnoreDomainMessage,
    pydantic.Field(discriminator="type"),
]

inbound_message_adapter: pydantic.TypeAdapter[InboundMessage] = pydantic.TypeAdapter(InboundMessage)
