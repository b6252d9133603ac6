"""
Per-tab navigation sessions and their record buckets.

A bucket is created on a main-frame commit for ``(tab, origin)`` and keeps
receiving records until the tab commits a different origin.  Each bucket
is stored under ``{origin}|{tabId}|{epochMillis}`` inside the single
``buckets`` collection of the key-value store.

Persistence is read-modify-write of the whole collection.  Every write
goes through one lock and merges only its own bucket into the collection
it has just read, so two appends finishing back-to-back cannot discard
each other's records.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import pydantic

from jsinspector.models import records, sessions
from jsinspector.storage import kv
from jsinspector.utils import errors, logger
from jsinspector.utils import url as url_mod

log = logger.create_logger("BucketStore")

STORE_KEY = "buckets"


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


class SessionBucketStore:
    """Owns every bucket and the active session of each tab."""

    def __init__(self, store: kv.KeyValueStore) -> None:
        self._store = store
        self._sessions: dict[int, sessions.ActiveSession] = {}
        self._buckets: dict[str, sessions.Bucket] = {}
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[None]] = set()
        self._unsaved: set[str] = set()

    # ==========================================================================
    # State Getters
    # ==========================================================================

    @property
    def buckets(self) -> dict[str, sessions.Bucket]:
        return dict(self._buckets)

    def get_bucket(self, bucket_key: str) -> sessions.Bucket | None:
        return self._buckets.get(bucket_key)

    def get_active_session(self, tab_id: int) -> sessions.ActiveSession | None:
        return self._sessions.get(tab_id)

    # ==========================================================================
    # Loading
    # ==========================================================================

    async def load(self) -> int:
        """Rehydrate the bucket cache from the store.

        Entries that fail validation are skipped.  Returns the number of
        buckets loaded.
        """
        try:
            data = await self._store.get([STORE_KEY])
        except errors.StoreError as exc:
            log.error("Failed to load buckets", {"error": errors.get_error_message(exc)})
            return 0

        stored: dict[str, Any] = data.get(STORE_KEY) or {}
        loaded = 0
        for bucket_key, raw in stored.items():
            try:
                self._buckets[bucket_key] = sessions.Bucket.model_validate(raw)
                loaded += 1
            except pydantic.ValidationError as exc:
                log.warn("Skipping malformed bucket", {"bucketKey": bucket_key, "errors": exc.error_count()})
        log.info("Buckets loaded", {"count": loaded})
        return loaded

    # ==========================================================================
    # Sessions
    # ==========================================================================

    def get_or_create_bucket(self, tab_id: int, url: str) -> str | None:
        """Return the tab's bucket key for the origin of *url*.

        The active bucket is reused while the tab stays on the same origin
        and the bucket is still cached; otherwise a new bucket becomes the
        tab's active session and is scheduled for persistence.  Returns
        ``None`` when *url* has no origin.
        """
        origin = url_mod.get_origin(url)
        if origin is None:
            log.debug("No origin for navigation, no bucket", {"tabId": tab_id, "url": url})
            return None

        existing = self._sessions.get(tab_id)
        if existing is not None and existing.origin == origin and existing.bucket_key in self._buckets:
            return existing.bucket_key

        epoch_ms = _epoch_ms()
        bucket_key = sessions.make_bucket_key(origin, tab_id, epoch_ms)
        while bucket_key in self._buckets:
            epoch_ms += 1
            bucket_key = sessions.make_bucket_key(origin, tab_id, epoch_ms)

        self._buckets[bucket_key] = sessions.Bucket(
            started_at=records.now_iso(), origin=origin, tab_id=tab_id
        )
        self._sessions[tab_id] = sessions.ActiveSession(origin=origin, bucket_key=bucket_key)
        log.info("Session started", {"tabId": tab_id, "origin": origin, "bucketKey": bucket_key})
        self._schedule_persist(bucket_key)
        return bucket_key

    def evict(self, bucket_key: str) -> bool:
        """Drop a bucket from the in-memory cache (the stored copy is kept)."""
        return self._buckets.pop(bucket_key, None) is not None

    async def append(self, tab_id: int, record: records.Record) -> bool:
        """Append *record* to the tab's active bucket and persist it.

        Records for tabs without an active, cached bucket are dropped.
        Returns ``True`` when the record was stored.
        """
        session = self._sessions.get(tab_id)
        if session is None:
            log.debug("No active session, record dropped", {"tabId": tab_id, "url": record.url})
            return False
        bucket = self._buckets.get(session.bucket_key)
        if bucket is None:
            log.debug("Bucket evicted, record dropped", {"tabId": tab_id, "bucketKey": session.bucket_key})
            return False
        bucket.records.append(record)
        await self.persist_bucket(session.bucket_key)
        return True

    # ==========================================================================
    # Persistence
    # ==========================================================================

    def _schedule_persist(self, bucket_key: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._unsaved.add(bucket_key)
            return
        task = loop.create_task(self.persist_bucket(bucket_key))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def persist_bucket(self, bucket_key: str) -> None:
        """Write one bucket into the stored collection, serialised with all other writes."""
        async with self._lock:
            bucket = self._buckets.get(bucket_key)
            if bucket is None:
                return
            try:
                data = await self._store.get([STORE_KEY])
                stored = data.get(STORE_KEY) or {}
                stored[bucket_key] = bucket.model_dump(by_alias=True, mode="json")
                await self._store.set({STORE_KEY: stored})
                self._unsaved.discard(bucket_key)
            except errors.StoreError as exc:
                self._unsaved.add(bucket_key)
                log.error(
                    "Failed to persist bucket",
                    {"bucketKey": bucket_key, "error": errors.get_error_message(exc)},
                )

    async def flush(self) -> None:
        """Wait for scheduled writes and retry buckets that were never saved."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
        for bucket_key in list(self._unsaved):
            await self.persist_bucket(bucket_key)
