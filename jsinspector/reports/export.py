"""
Session lookup, filtering and CSV/JSON export of classified records.
"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterable, Mapping
from typing import Any

from jsinspector.models import records, sessions

CSV_COLUMNS = ("timestamp", "url", "reason", "evidence", "suggestedFix", "status")


def latest_bucket_for(
    buckets: Mapping[str, sessions.Bucket], tab_id: int, origin: str | None = None
) -> tuple[str, sessions.Bucket] | None:
    """Newest bucket for *tab_id* (and *origin*, if given), by the epoch in its key."""
    best: tuple[int, str] | None = None
    for key in buckets:
        parts = sessions.parse_bucket_key(key)
        if parts is None or parts.tab_id != tab_id:
            continue
        if origin is not None and parts.origin != origin:
            continue
        if best is None or parts.started_at_ms > best[0]:
            best = (parts.started_at_ms, key)
    if best is None:
        return None
    return best[1], buckets[best[1]]


def filter_records(items: Iterable[records.Record], query: str) -> list[records.Record]:
    """Records whose URL or reason contains *query*, case-insensitively."""
    needle = query.lower()
    if not needle:
        return list(items)
    return [r for r in items if needle in r.url.lower() or needle in str(r.reason).lower()]


def to_csv(items: Iterable[records.Record]) -> str:
    """Render records as CSV with every field quoted."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    buf.write(",".join(CSV_COLUMNS) + "\n")
    for r in items:
        writer.writerow([r.timestamp, r.url, str(r.reason), r.evidence, r.suggested_fix, r.status])
    return buf.getvalue().rstrip("\n")


def to_json(
    items: Iterable[records.Record], origin: str, tab_id: int, exported_at: str | None = None
) -> str:
    payload: dict[str, Any] = {
        "origin": origin,
        "tabId": tab_id,
        "exportedAt": exported_at or records.now_iso(),
        "records": [r.model_dump(by_alias=True, mode="json") for r in items],
    }
    return json.dumps(payload, indent=2)
