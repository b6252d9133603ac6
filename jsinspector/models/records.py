"""Pydantic models for classified script-load records."""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Literal

import pydantic

from jsinspector.utils.serialization import snake_to_camel

RecordStatus = Literal["blocked", "executed"]


class Reason(enum.StrEnum):
    """Why a script load executed or was blocked."""

    CSP = "CSP"
    MIXED_CONTENT = "Mixed Content"
    AD_TRACKER = "Ad/Tracker Blocker"
    DEVTOOLS_BLOCK = "DevTools Block"
    NETWORK_ERROR = "Network Error"
    CROSS_ORIGIN_MIME = "Cross-Origin/MIME"
    EXECUTED = "Executed"

    @property
    def status(self) -> RecordStatus:
        return "executed" if self is Reason.EXECUTED else "blocked"

    @property
    def suggested_fix(self) -> str:
        return _SUGGESTED_FIXES[self]


_SUGGESTED_FIXES: dict[Reason, str] = {
    Reason.CSP: "Update script-src in Content-Security-Policy to include the script's origin or use a nonce/hash.",
    Reason.MIXED_CONTENT: "Load the script over HTTPS or proxy it through a secure endpoint.",
    Reason.AD_TRACKER: "Rename the resource path or host, or serve from a neutral CDN path.",
    Reason.DEVTOOLS_BLOCK: 'In DevTools, uncheck "Block request URL" for this resource or clear the Blocked URLs list.',
    Reason.NETWORK_ERROR: "Verify DNS/hosting/CDN availability and correct URL; check status codes and timeouts.",
    Reason.CROSS_ORIGIN_MIME: "Serve with a JavaScript MIME type and avoid nosniff, or correct CORS/mime configuration.",
    Reason.EXECUTED: "",
}


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Record(pydantic.BaseModel):
    """One classified script load.

    Immutable once created.  Serialised with camelCase keys and the
    timestamp under ``ts``, matching the persisted bucket layout.
    """

    model_config = pydantic.ConfigDict(
        alias_generator=snake_to_camel, populate_by_name=True, frozen=True
    )

    url: str
    reason: Reason
    evidence: str = ""
    suggested_fix: str = ""
    status: RecordStatus
    timestamp: str = pydantic.Field(default_factory=now_iso, alias="ts")

    @classmethod
    def for_reason(cls, url: str, reason: Reason, evidence: str = "") -> Record:
        """Build a record whose fix and status are derived from *reason*."""
        return cls(
            url=url,
            reason=reason,
            evidence=evidence,
            suggested_fix=reason.suggested_fix,
            status=reason.status,
        )
