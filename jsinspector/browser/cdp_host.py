"""
Browser host adapter: feeds a Playwright page's CDP events to the inspector.

Chrome DevTools Protocol events are translated into the lifecycle events
the inspector expects:

- ``Page.frameNavigated`` (top frame)  → navigation commit
- ``Network.requestWillBeSent``         → before-request
- ``Network.responseReceived``          → headers-received
- ``Network.loadingFinished``           → completed
- ``Network.loadingFailed``             → error

CSP violations raised inside the page are bridged back through an exposed
function, the way an in-page listener would message the background.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from playwright import async_api

from jsinspector import inspector as inspector_mod
from jsinspector.classification import patterns
from jsinspector.models import events
from jsinspector.utils import errors, logger

log = logger.create_logger("CdpHost")

CSP_BINDING = "__jsinspectorReportCsp"

_CSP_LISTENER_SCRIPT = """
window.addEventListener('securitypolicyviolation', (e) => {
    try {
        window.%s({
            blockedURI: e.blockedURI,
            effectiveDirective: e.effectiveDirective,
            violatedDirective: e.violatedDirective,
            originalPolicy: e.originalPolicy,
            sourceFile: e.sourceFile,
            lineNumber: e.lineNumber,
            columnNumber: e.columnNumber,
        });
    } catch (err) {}
});
""" % CSP_BINDING

# Blocks that an extension host would see as ERR_BLOCKED_BY_CLIENT.
_CLIENT_BLOCKED_REASONS = frozenset({"inspector", "devtools", "subresource-filter"})
_MIXED_CONTENT_REASON = "mixed-content"
# Reported by the in-page securitypolicyviolation listener instead.
_CSP_REASONS = frozenset({"csp"})


def resource_type(cdp_type: str | None, is_top_frame: bool) -> str:
    """Map a CDP resource type onto the host's lower-case type names."""
    if not cdp_type:
        return "other"
    lowered = cdp_type.lower()
    if lowered == "document":
        return "main_frame" if is_top_frame else "sub_frame"
    return lowered


def cdp_headers(headers: dict[str, Any] | None) -> list[events.HttpHeader]:
    """CDP joins repeated headers with newlines; split them back into lists."""
    result: list[events.HttpHeader] = []
    for name, value in (headers or {}).items():
        text = str(value)
        result.append(events.HttpHeader(name=name, value=text.split("\n") if "\n" in text else text))
    return result


class CdpHost:
    """Drives one inspector tab from one Playwright page."""

    def __init__(self, inspector: inspector_mod.ScriptInspector, tab_id: int = 0) -> None:
        self._inspector = inspector
        self.tab_id = tab_id
        self._top_frame_id: str | None = None
        # requestId -> (url, type, status); loadingFinished carries none of these.
        self._requests: dict[str, tuple[str, str, int]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    async def attach(self, page: async_api.Page) -> None:
        """Subscribe to the page's network and navigation events."""
        await page.expose_function(CSP_BINDING, self._on_csp_violation)
        await page.add_init_script(_CSP_LISTENER_SCRIPT)

        cdp = await page.context.new_cdp_session(page)
        cdp.on("Page.frameNavigated", self.on_frame_navigated)
        cdp.on("Network.requestWillBeSent", self.on_request_will_be_sent)
        cdp.on("Network.responseReceived", self.on_response_received)
        cdp.on("Network.loadingFinished", self.on_loading_finished)
        cdp.on("Network.loadingFailed", self.on_loading_failed)
        await cdp.send("Page.enable")
        await cdp.send("Network.enable")

        tree = await cdp.send("Page.getFrameTree")
        self._top_frame_id = tree.get("frameTree", {}).get("frame", {}).get("id")
        log.info("Attached to page", {"tabId": self.tab_id, "topFrame": self._top_frame_id})

    async def flush(self) -> None:
        """Wait for in-flight classifications, then for pending store writes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        await self._inspector.buckets.flush()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("Event handler failed", {"error": errors.get_error_message(task.exception())})

    # ==========================================================================
    # CDP event handlers
    # ==========================================================================

    def on_frame_navigated(self, params: dict[str, Any]) -> None:
        frame = params.get("frame", {})
        if frame.get("parentId"):
            return
        self._top_frame_id = frame.get("id", self._top_frame_id)
        self._inspector.on_navigation_committed(
            events.NavigationCommitted(tab_id=self.tab_id, url=frame.get("url", ""), frame_id=events.TOP_LEVEL_FRAME)
        )

    def on_request_will_be_sent(self, params: dict[str, Any]) -> None:
        request_id = params["requestId"]
        url = params.get("request", {}).get("url", "")
        is_top = params.get("frameId") == self._top_frame_id
        req_type = resource_type(params.get("type"), is_top)
        self._requests[request_id] = (url, req_type, 0)
        self._inspector.on_before_request(
            events.BeforeRequest(request_id=request_id, url=url, tab_id=self.tab_id, type=req_type)
        )

    def on_response_received(self, params: dict[str, Any]) -> None:
        request_id = params["requestId"]
        response = params.get("response", {})
        url, req_type, _ = self._requests.get(request_id, (response.get("url", ""), "other", 0))
        if req_type == "other" and params.get("type"):
            req_type = resource_type(params.get("type"), params.get("frameId") == self._top_frame_id)
        status = int(response.get("status") or 0)
        self._requests[request_id] = (url, req_type, status)
        self._inspector.on_headers_received(
            events.HeadersReceived(
                request_id=request_id,
                url=url,
                tab_id=self.tab_id,
                type=req_type,
                status_code=status,
                response_headers=cdp_headers(response.get("headers")),
            )
        )

    def on_loading_finished(self, params: dict[str, Any]) -> None:
        request_id = params["requestId"]
        url, req_type, status = self._requests.pop(request_id, ("", "other", 0))
        self._spawn(
            self._inspector.on_completed(
                events.RequestCompleted(
                    request_id=request_id, url=url, tab_id=self.tab_id, type=req_type, status_code=status
                )
            )
        )

    def on_loading_failed(self, params: dict[str, Any]) -> None:
        request_id = params["requestId"]
        url, req_type, _ = self._requests.pop(request_id, ("", "other", 0))
        if req_type == "other" and params.get("type"):
            req_type = resource_type(params.get("type"), False)
        error = params.get("errorText") or ""
        blocked_reason = params.get("blockedReason")
        if blocked_reason in _CSP_REASONS:
            self._inspector.discard_request(request_id, url, self.tab_id)
            return
        if blocked_reason in _CLIENT_BLOCKED_REASONS and patterns.CLIENT_BLOCKED_ERROR not in error:
            error = f"net::{patterns.CLIENT_BLOCKED_ERROR}"
        event = events.RequestErrored(request_id=request_id, url=url, tab_id=self.tab_id, type=req_type, error=error)
        if blocked_reason == _MIXED_CONTENT_REASON:
            self._spawn(self._inspector.on_mixed_content_blocked(event))
        else:
            self._spawn(self._inspector.on_error_occurred(event))

    async def _on_csp_violation(self, payload: dict[str, Any]) -> None:
        await self._inspector.handle_message(
            {"type": "csp-violation", "payload": payload}, sender_tab_id=self.tab_id
        )


async def watch(
    url: str,
    inspector: inspector_mod.ScriptInspector,
    *,
    seconds: float = 10.0,
    headless: bool = True,
    tab_id: int = 0,
) -> str | None:
    """Open *url* in Chromium, observe it for *seconds*, and return the bucket key."""
    host = CdpHost(inspector, tab_id=tab_id)
    async with async_api.async_playwright() as pw:
        browser = await pw.chromium.launch(headless=headless)
        try:
            page = await browser.new_page()
            await host.attach(page)
            log.info("Navigating", {"url": url})
            try:
                await page.goto(url, wait_until="load")
            except async_api.Error as exc:
                log.warn("Navigation did not complete", {"url": url, "error": errors.get_error_message(exc)})
            await asyncio.sleep(seconds)
            await host.flush()
        finally:
            await browser.close()
    session = inspector.buckets.get_active_session(tab_id)
    return session.bucket_key if session else None
