"""
The correlator: one object owning all request, header, session and bucket
state, with one handler per host event and inbound message.

Handlers run on a single event loop.  Only store access suspends, and the
bucket store serialises those writes, so no other locking is needed.  A
multi-threaded host must funnel every call through one loop.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pydantic

from jsinspector import config
from jsinspector.classification import engine
from jsinspector.models import events, records
from jsinspector.sessions import bucket_store
from jsinspector.storage import kv
from jsinspector.tracking import ignore_list as ignore_list_mod
from jsinspector.tracking import requests
from jsinspector.utils import errors, logger

log = logger.create_logger("Inspector")


class ScriptInspector:
    """Turns host lifecycle events into classified, bucketed records."""

    def __init__(
        self,
        store: kv.KeyValueStore | None = None,
        settings: config.Settings | None = None,
    ) -> None:
        self.settings = settings or config.get_settings()
        self.store: kv.KeyValueStore = store if store is not None else kv.MemoryStore()
        self.ignore_list = ignore_list_mod.IgnoreList(
            self.store, strict=self.settings.strict_ignore_matching
        )
        self.tracker = requests.RequestTracker(self.ignore_list)
        self.buckets = bucket_store.SessionBucketStore(self.store)

    async def load_state(self) -> None:
        """Rehydrate buckets and the ignore list from the store."""
        await self.buckets.load()
        try:
            data = await self.store.get([ignore_list_mod.STORE_KEY])
        except errors.StoreError as exc:
            log.error("Failed to load ignore list", {"error": errors.get_error_message(exc)})
            return
        self.ignore_list.replace(list(data.get(ignore_list_mod.STORE_KEY) or []))

    def page_origin(self, tab_id: int) -> str | None:
        session = self.buckets.get_active_session(tab_id)
        return session.origin if session else None

    # ==========================================================================
    # Host events
    # ==========================================================================

    def on_navigation_committed(self, event: events.NavigationCommitted) -> str | None:
        """Open or reuse the tab's bucket on a top-level commit."""
        if event.frame_id != events.TOP_LEVEL_FRAME:
            return None
        return self.buckets.get_or_create_bucket(event.tab_id, event.url)

    def on_before_request(self, event: events.BeforeRequest) -> bool:
        """Observe a request before dispatch; never alters it."""
        return self.tracker.begin_tracking(event.request_id, event.url, event.tab_id, event.type)

    def on_headers_received(self, event: events.HeadersReceived) -> None:
        self.tracker.record_headers(event.request_id, event.type, event.header_map(), event.tab_id)

    async def on_completed(self, event: events.RequestCompleted) -> records.Record | None:
        """Classify a finished script load and append it to its tab's bucket."""
        resolved = self._resolve(event.request_id, event.type, event.url, event.tab_id)
        if resolved is None:
            return None
        record = engine.classify(
            resolved.url,
            event.status_code,
            resolved.headers,
            None,
            self.page_origin(resolved.tab_id),
        )
        await self._store_record(resolved.tab_id, record)
        return record

    async def on_error_occurred(self, event: events.RequestErrored) -> records.Record | None:
        """Classify a failed script load through the error path."""
        resolved = self._resolve(event.request_id, event.type, event.url, event.tab_id)
        if resolved is None:
            return None
        record = engine.classify(resolved.url, None, resolved.headers, event.error, errored=True)
        await self._store_record(resolved.tab_id, record)
        return record

    async def on_mixed_content_blocked(self, event: events.RequestErrored) -> records.Record | None:
        """Record a script the browser refused to load over HTTP on an HTTPS page."""
        resolved = self._resolve(event.request_id, event.type, event.url, event.tab_id)
        if resolved is None:
            return None
        record = engine.classify_blocked_mixed_content(resolved.url, self.page_origin(resolved.tab_id))
        await self._store_record(resolved.tab_id, record)
        return record

    def discard_request(self, request_id: str, url: str, tab_id: int) -> None:
        """Forget a request whose outcome is reported through another channel."""
        self.tracker.resolve_and_clear(request_id, url, tab_id)

    def _resolve(self, request_id: str, request_type: str, url: str, tab_id: int) -> requests.ResolvedRequest | None:
        script_like = self.tracker.is_script_like(request_id, request_type, url)
        resolved = self.tracker.resolve_and_clear(request_id, url, tab_id)
        if not script_like or not requests.is_valid_tab(resolved.tab_id):
            return None
        if self.ignore_list.should_ignore(resolved.url):
            log.debug("Ignored host, not classified", {"requestId": request_id, "url": resolved.url})
            return None
        if not resolved.tracked:
            log.debug("Terminal event for untracked request", {"requestId": request_id, "url": resolved.url})
        return resolved

    async def _store_record(self, tab_id: int, record: records.Record) -> None:
        stored = await self.buckets.append(tab_id, record)
        if stored:
            log.info(
                "Script classified",
                {"tabId": tab_id, "reason": str(record.reason), "url": record.url},
            )

    # ==========================================================================
    # Inbound messages
    # ==========================================================================

    async def report_csp_violation(
        self, tab_id: int | None, payload: events.CspViolationPayload
    ) -> records.Record | None:
        """Append a ``CSP`` record for a violation reported by the page in *tab_id*."""
        if tab_id is None or not requests.is_valid_tab(tab_id):
            log.debug("CSP violation without a sender tab, dropped")
            return None
        record = engine.classify_csp_violation(
            payload.blocked_uri,
            payload.violated_directive,
            payload.effective_directive,
            payload.original_policy,
            excerpt=self.settings.csp_policy_excerpt,
        )
        await self._store_record(tab_id, record)
        return record

    def get_state(self, tab_id: int | None) -> dict[str, Any]:
        session = self.buckets.get_active_session(tab_id) if tab_id is not None else None
        policy = self.tracker.get_tab_policy(tab_id) if tab_id is not None else None
        return {
            "ok": True,
            "currentSession": session.model_dump(by_alias=True) if session else None,
            "policy": policy.model_dump(by_alias=True) if policy else None,
        }

    async def handle_message(
        self, message: Mapping[str, Any], sender_tab_id: int | None = None
    ) -> dict[str, Any]:
        """Dispatch one inbound message and build its response."""
        try:
            parsed = events.inbound_message_adapter.validate_python(message)
        except pydantic.ValidationError as exc:
            if message.get("type") not in ("csp-violation", "get-state", "set-ignore-domain"):
                return {"ok": False, "error": "unknown message type"}
            return {"ok": False, "error": errors.get_error_message(exc)}

        if isinstance(parsed, events.CspViolationMessage):
            record = await self.report_csp_violation(sender_tab_id, parsed.payload)
            return {"ok": record is not None}
        if isinstance(parsed, events.GetStateMessage):
            return self.get_state(parsed.tab_id)
        await self.ignore_list.add(parsed.domain)
        return {"ok": True}
