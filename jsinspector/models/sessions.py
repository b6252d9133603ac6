"""Pydantic models for navigation sessions, buckets and in-flight requests."""

from __future__ import annotations

import pydantic

from jsinspector.models.records import Record
from jsinspector.utils.serialization import snake_to_camel


class Bucket(pydantic.BaseModel):
    """Append-only log of records for one tab × origin × start time."""

    model_config = pydantic.ConfigDict(
        alias_generator=snake_to_camel, populate_by_name=True
    )

    started_at: str
    origin: str
    tab_id: int
    records: list[Record] = pydantic.Field(default_factory=list)


class ActiveSession(pydantic.BaseModel):
    """The bucket currently receiving records for a tab."""

    model_config = pydantic.ConfigDict(
        alias_generator=snake_to_camel, populate_by_name=True
    )

    origin: str
    bucket_key: str


class PendingRequest(pydantic.BaseModel):
    """Metadata captured when a candidate script request is first seen."""

    url: str
    tab_id: int
    started_at: str


class TabPolicy(pydantic.BaseModel):
    """Main-document CSP headers last seen for a tab."""

    model_config = pydantic.ConfigDict(
        alias_generator=snake_to_camel, populate_by_name=True
    )

    csp: str | None = None
    report_to: str | None = None


class BucketKeyParts(pydantic.BaseModel):
    """Decoded ``{origin}|{tabId}|{epochMillis}`` bucket key."""

    origin: str
    tab_id: int
    started_at_ms: int


def make_bucket_key(origin: str, tab_id: int, epoch_ms: int) -> str:
    return f"{origin}|{tab_id}|{epoch_ms}"


def parse_bucket_key(key: str) -> BucketKeyParts | None:
    """Split a bucket key into its parts; ``None`` if it is malformed."""
    try:
        origin, tab_id, started = key.rsplit("|", 2)
        return BucketKeyParts(origin=origin, tab_id=int(tab_id), started_at_ms=int(started))
    except ValueError:
        return None
