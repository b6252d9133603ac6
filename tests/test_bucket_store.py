"""Tests for jsinspector.sessions.bucket_store."""

from __future__ import annotations

import asyncio
from unittest import mock

import pytest

from jsinspector.models import sessions
from jsinspector.models.records import Reason, Record
from jsinspector.sessions import bucket_store
from jsinspector.sessions.bucket_store import STORE_KEY, SessionBucketStore
from jsinspector.storage import kv
from jsinspector.utils import errors


def _record(url: str, reason: Reason = Reason.EXECUTED) -> Record:
    return Record.for_reason(url, reason)


class TestGetOrCreateBucket:
    """Session continuity per (tab, origin)."""

    def test_same_origin_reuses_key(self) -> None:
        buckets = SessionBucketStore(kv.MemoryStore())
        first = buckets.get_or_create_bucket(1, "https://site.com/a")
        second = buckets.get_or_create_bucket(1, "https://site.com/b?x=1")
        assert first is not None
        assert first == second
        assert len(buckets.buckets) == 1

    def test_new_origin_new_key(self) -> None:
        buckets = SessionBucketStore(kv.MemoryStore())
        first = buckets.get_or_create_bucket(1, "https://site.com/")
        second = buckets.get_or_create_bucket(1, "https://other.com/")
        assert first != second
        session = buckets.get_active_session(1)
        assert session is not None
        assert session.bucket_key == second
        assert session.origin == "https://other.com"

    def test_returning_to_origin_starts_fresh(self) -> None:
        buckets = SessionBucketStore(kv.MemoryStore())
        first = buckets.get_or_create_bucket(1, "https://site.com/")
        buckets.get_or_create_bucket(1, "https://other.com/")
        third = buckets.get_or_create_bucket(1, "https://site.com/")
        assert third != first

    def test_tabs_are_independent(self) -> None:
        buckets = SessionBucketStore(kv.MemoryStore())
        a = buckets.get_or_create_bucket(1, "https://site.com/")
        b = buckets.get_or_create_bucket(2, "https://site.com/")
        assert a != b

    def test_key_layout(self) -> None:
        buckets = SessionBucketStore(kv.MemoryStore())
        with mock.patch.object(bucket_store, "_epoch_ms", return_value=1700000000000):
            key = buckets.get_or_create_bucket(4, "https://site.com:8443/page")
        assert key == "https://site.com:8443|4|1700000000000"
        bucket = buckets.get_bucket(key)
        assert bucket is not None
        assert (bucket.origin, bucket.tab_id, bucket.records) == ("https://site.com:8443", 4, [])

    def test_same_millisecond_keys_do_not_collide(self) -> None:
        buckets = SessionBucketStore(kv.MemoryStore())
        with mock.patch.object(bucket_store, "_epoch_ms", return_value=1000):
            first = buckets.get_or_create_bucket(1, "https://site.com/")
            buckets.get_or_create_bucket(1, "https://other.com/")
            third = buckets.get_or_create_bucket(1, "https://site.com/")
        assert first == "https://site.com|1|1000"
        assert third == "https://site.com|1|1001"

    def test_unparseable_url_returns_none(self) -> None:
        buckets = SessionBucketStore(kv.MemoryStore())
        assert buckets.get_or_create_bucket(1, "not a url") is None
        assert buckets.get_active_session(1) is None

    def test_evicted_bucket_is_replaced(self) -> None:
        buckets = SessionBucketStore(kv.MemoryStore())
        with mock.patch.object(bucket_store, "_epoch_ms", side_effect=[1000, 2000]):
            first = buckets.get_or_create_bucket(1, "https://site.com/")
            assert buckets.evict(first)
            second = buckets.get_or_create_bucket(1, "https://site.com/")
        assert second != first

    @pytest.mark.asyncio
    async def test_new_bucket_is_persisted(self) -> None:
        store = kv.MemoryStore()
        buckets = SessionBucketStore(store)
        key = buckets.get_or_create_bucket(1, "https://site.com/")
        await buckets.flush()
        stored = store.snapshot()[STORE_KEY][key]
        assert stored["origin"] == "https://site.com"
        assert stored["tabId"] == 1
        assert stored["records"] == []
        assert stored["startedAt"].endswith("Z")


class TestAppend:
    """Record append and persistence."""

    @pytest.mark.asyncio
    async def test_appends_in_call_order(self) -> None:
        store = kv.MemoryStore()
        buckets = SessionBucketStore(store)
        key = buckets.get_or_create_bucket(1, "https://site.com/")
        urls = [f"https://cdn.com/{i}.js" for i in range(5)]
        for u in urls:
            assert await buckets.append(1, _record(u))
        bucket = buckets.get_bucket(key)
        assert bucket is not None
        assert [r.url for r in bucket.records] == urls
        assert [r["url"] for r in store.snapshot()[STORE_KEY][key]["records"]] == urls

    @pytest.mark.asyncio
    async def test_no_session_drops_record(self) -> None:
        buckets = SessionBucketStore(kv.MemoryStore())
        assert not await buckets.append(9, _record("https://cdn.com/a.js"))

    @pytest.mark.asyncio
    async def test_evicted_bucket_drops_record(self) -> None:
        buckets = SessionBucketStore(kv.MemoryStore())
        key = buckets.get_or_create_bucket(1, "https://site.com/")
        buckets.evict(key)
        assert not await buckets.append(1, _record("https://cdn.com/a.js"))

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_not_lost(self) -> None:
        store = kv.MemoryStore()
        buckets = SessionBucketStore(store)
        key_a = buckets.get_or_create_bucket(1, "https://site.com/")
        key_b = buckets.get_or_create_bucket(2, "https://other.com/")
        await asyncio.gather(
            buckets.append(1, _record("https://cdn.com/1.js")),
            buckets.append(1, _record("https://cdn.com/2.js")),
            buckets.append(2, _record("https://cdn.com/3.js")),
        )
        await buckets.flush()
        stored = store.snapshot()[STORE_KEY]
        assert [r["url"] for r in stored[key_a]["records"]] == ["https://cdn.com/1.js", "https://cdn.com/2.js"]
        assert [r["url"] for r in stored[key_b]["records"]] == ["https://cdn.com/3.js"]

    @pytest.mark.asyncio
    async def test_keeps_buckets_written_by_others(self) -> None:
        store = kv.MemoryStore({STORE_KEY: {"https://old.com|1|5": {"startedAt": "x", "origin": "https://old.com", "tabId": 1, "records": []}}})
        buckets = SessionBucketStore(store)
        key = buckets.get_or_create_bucket(1, "https://site.com/")
        await buckets.append(1, _record("https://cdn.com/a.js"))
        assert set(store.snapshot()[STORE_KEY]) == {"https://old.com|1|5", key}

    @pytest.mark.asyncio
    async def test_store_failure_keeps_memory_state(self) -> None:
        store = kv.MemoryStore()
        buckets = SessionBucketStore(store)
        key = buckets.get_or_create_bucket(1, "https://site.com/")
        with mock.patch.object(store, "set", side_effect=errors.StoreError("disk full")):
            assert await buckets.append(1, _record("https://cdn.com/a.js"))
        bucket = buckets.get_bucket(key)
        assert bucket is not None
        assert len(bucket.records) == 1
        await buckets.flush()
        assert len(store.snapshot()[STORE_KEY][key]["records"]) == 1


class TestLoad:
    """Rehydration from the store."""

    @pytest.mark.asyncio
    async def test_loads_valid_and_skips_malformed(self) -> None:
        record = _record("https://cdn.com/a.js").model_dump(by_alias=True, mode="json")
        store = kv.MemoryStore({
            STORE_KEY: {
                "https://site.com|1|10": {"startedAt": "t", "origin": "https://site.com", "tabId": 1, "records": [record]},
                "broken": {"origin": 5},
            }
        })
        buckets = SessionBucketStore(store)
        assert await buckets.load() == 1
        bucket = buckets.get_bucket("https://site.com|1|10")
        assert isinstance(bucket, sessions.Bucket)
        assert bucket.records[0].url == "https://cdn.com/a.js"

    @pytest.mark.asyncio
    async def test_load_does_not_activate_sessions(self) -> None:
        store = kv.MemoryStore({STORE_KEY: {"https://site.com|1|10": {"startedAt": "t", "origin": "https://site.com", "tabId": 1}}})
        buckets = SessionBucketStore(store)
        await buckets.load()
        assert buckets.get_active_session(1) is None
