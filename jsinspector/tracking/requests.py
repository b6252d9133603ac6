"""
Request lifecycle correlation keyed by the host's request identifier.

Before-request, headers-received and terminal events for one load share a
request id but arrive on separate event streams, interleaved with events
for other loads.  ``RequestTracker`` records what is known at each phase
and hands it over, once, at the terminal event.

Entries are only cleared by their own terminal event.  A load that never
completes leaves its entry behind; there is no timeout.
"""

from __future__ import annotations

from collections.abc import Mapping

import pydantic

from jsinspector.models import records, sessions
from jsinspector.tracking import ignore_list as ignore_list_mod
from jsinspector.utils import logger
from jsinspector.utils import url as url_mod

log = logger.create_logger("RequestTracker")

SCRIPT_TYPE = "script"
MAIN_FRAME_TYPE = "main_frame"


def is_valid_tab(tab_id: int | None) -> bool:
    return isinstance(tab_id, int) and tab_id >= 0


class ResolvedRequest(pydantic.BaseModel):
    """Best-known facts about a load at its terminal event."""

    url: str
    tab_id: int
    headers: dict[str, str] = pydantic.Field(default_factory=dict)
    tracked: bool = False


class HeaderStore:
    """Response headers per request id, merged across deliveries."""

    def __init__(self) -> None:
        self._headers: dict[str, dict[str, str]] = {}

    def __len__(self) -> int:
        return len(self._headers)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._headers

    def merge(self, request_id: str, headers: Mapping[str, str]) -> None:
        """Add headers not yet stored; values already present are kept."""
        entry = self._headers.setdefault(request_id, {})
        for name, value in headers.items():
            entry.setdefault(name, value)

    def get(self, request_id: str) -> dict[str, str]:
        return dict(self._headers.get(request_id, {}))

    def pop(self, request_id: str) -> dict[str, str]:
        return self._headers.pop(request_id, {})


class RequestTracker:
    """Owns pending-request metadata, response headers and per-tab CSP."""

    def __init__(self, ignore_list: ignore_list_mod.IgnoreList) -> None:
        self._ignore_list = ignore_list
        self._pending: dict[str, sessions.PendingRequest] = {}
        self.headers = HeaderStore()
        self._tab_policies: dict[int, sessions.TabPolicy] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def get_pending(self, request_id: str) -> sessions.PendingRequest | None:
        return self._pending.get(request_id)

    # ==========================================================================
    # Lifecycle phases
    # ==========================================================================

    def begin_tracking(self, request_id: str, url: str, tab_id: int, request_type: str = "other") -> bool:
        """Register a candidate script load.

        Only script-typed or JS-looking URLs from a real tab whose host is
        not ignored are tracked.  A stale entry under the same id is
        overwritten.  Returns ``True`` when the request is tracked.
        """
        if not is_valid_tab(tab_id):
            return False
        if self._ignore_list.should_ignore(url):
            log.debug("Ignored host, not tracking", {"requestId": request_id, "url": url})
            return False
        if request_type != SCRIPT_TYPE and not url_mod.is_likely_javascript_url(url):
            return False
        self._pending[request_id] = sessions.PendingRequest(
            url=url, tab_id=tab_id, started_at=records.now_iso()
        )
        return True

    def record_headers(
        self,
        request_id: str,
        request_type: str,
        headers: Mapping[str, str],
        tab_id: int | None = None,
    ) -> None:
        """Store response headers for a script load.

        Main-document headers go to the tab's CSP side-channel instead.
        Headers for requests already being tracked are kept whatever their
        declared type, since those were admitted by the URL heuristic.
        """
        if request_type == MAIN_FRAME_TYPE:
            if tab_id is not None and is_valid_tab(tab_id):
                self._tab_policies[tab_id] = sessions.TabPolicy(
                    csp=headers.get("content-security-policy"),
                    report_to=headers.get("report-to"),
                )
            return
        if request_type == SCRIPT_TYPE or request_id in self._pending:
            self.headers.merge(request_id, headers)

    def is_script_like(self, request_id: str, request_type: str, url: str) -> bool:
        """Whether a terminal event concerns a script load."""
        if request_type == SCRIPT_TYPE:
            return True
        pending = self._pending.get(request_id)
        if pending is not None and url_mod.is_likely_javascript_url(pending.url):
            return True
        return url_mod.is_likely_javascript_url(url)

    def resolve_and_clear(self, request_id: str, fallback_url: str, fallback_tab_id: int) -> ResolvedRequest:
        """Hand over everything known about *request_id* and forget it.

        Tracked metadata wins; the terminal event's own URL and tab fill in
        for loads whose before-request phase was never seen.  Safe to call
        for unknown ids.
        """
        pending = self._pending.pop(request_id, None)
        headers = self.headers.pop(request_id)
        if pending is None:
            return ResolvedRequest(url=fallback_url, tab_id=fallback_tab_id, headers=headers)
        return ResolvedRequest(url=pending.url, tab_id=pending.tab_id, headers=headers, tracked=True)

    # ==========================================================================
    # CSP side-channel
    # ==========================================================================

    def get_tab_policy(self, tab_id: int) -> sessions.TabPolicy | None:
        return self._tab_policies.get(tab_id)
