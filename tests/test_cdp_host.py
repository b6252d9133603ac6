"""Tests for jsinspector.browser.cdp_host — CDP event translation.

The handlers are driven directly with CDP-shaped params; no browser is
launched.
"""

from __future__ import annotations

import pytest

from jsinspector.browser import cdp_host
from jsinspector.inspector import ScriptInspector
from jsinspector.models.records import Reason
from jsinspector.storage import kv


@pytest.fixture()
def host(settings) -> cdp_host.CdpHost:
    inspector = ScriptInspector(kv.MemoryStore(), settings)
    h = cdp_host.CdpHost(inspector, tab_id=1)
    h._top_frame_id = "TOP"
    h.on_frame_navigated({"frame": {"id": "TOP", "url": "https://site.com/"}})
    return h


def _records(host: cdp_host.CdpHost) -> list:
    session = host._inspector.buckets.get_active_session(1)
    assert session is not None
    return host._inspector.buckets.get_bucket(session.bucket_key).records


class TestResourceType:
    """Tests for resource_type()."""

    @pytest.mark.parametrize(
        ("cdp_type", "top", "expected"),
        [
            ("Script", False, "script"),
            ("Document", True, "main_frame"),
            ("Document", False, "sub_frame"),
            ("Image", False, "image"),
            (None, False, "other"),
        ],
    )
    def test_mapping(self, cdp_type: str | None, top: bool, expected: str) -> None:
        assert cdp_host.resource_type(cdp_type, top) == expected


class TestCdpHeaders:
    """Tests for cdp_headers()."""

    def test_splits_newline_joined_values(self) -> None:
        headers = cdp_host.cdp_headers({"Content-Type": "text/javascript", "Set-Cookie": "a=1\nb=2"})
        assert headers[0].value == "text/javascript"
        assert headers[1].value == ["a=1", "b=2"]

    def test_none(self) -> None:
        assert cdp_host.cdp_headers(None) == []


class TestNavigation:
    """Page.frameNavigated handling."""

    def test_child_frame_does_not_open_session(self, host: cdp_host.CdpHost) -> None:
        session = host._inspector.buckets.get_active_session(1)
        host.on_frame_navigated({"frame": {"id": "CHILD", "parentId": "TOP", "url": "https://ads.com/"}})
        assert host._inspector.buckets.get_active_session(1) == session

    def test_top_frame_opens_session(self, host: cdp_host.CdpHost) -> None:
        session = host._inspector.buckets.get_active_session(1)
        assert session is not None
        assert session.origin == "https://site.com"


class TestNetworkEvents:
    """Network.* handling end to end."""

    @pytest.mark.asyncio
    async def test_script_load_finished(self, host: cdp_host.CdpHost) -> None:
        host.on_request_will_be_sent({"requestId": "1", "request": {"url": "https://cdn.com/a.js"}, "type": "Script", "frameId": "TOP"})
        host.on_response_received({
            "requestId": "1",
            "type": "Script",
            "response": {"url": "https://cdn.com/a.js", "status": 200, "headers": {"X-Content-Type-Options": "nosniff", "Content-Type": "text/plain"}},
        })
        host.on_loading_finished({"requestId": "1"})
        await host.flush()
        records = _records(host)
        assert [r.reason for r in records] == [Reason.CROSS_ORIGIN_MIME]

    @pytest.mark.asyncio
    async def test_status_is_carried_to_completion(self, host: cdp_host.CdpHost) -> None:
        host.on_request_will_be_sent({"requestId": "1", "request": {"url": "https://cdn.com/a.js"}, "type": "Script"})
        host.on_response_received({"requestId": "1", "response": {"status": 503, "headers": {}}})
        host.on_loading_finished({"requestId": "1"})
        await host.flush()
        assert _records(host)[0].evidence == "HTTP 503"

    @pytest.mark.asyncio
    async def test_loading_failed_client_block(self, host: cdp_host.CdpHost) -> None:
        host.on_request_will_be_sent({"requestId": "2", "request": {"url": "https://cdn.com/b.js"}, "type": "Script"})
        host.on_loading_failed({"requestId": "2", "type": "Script", "errorText": "net::ERR_BLOCKED_BY_CLIENT"})
        await host.flush()
        assert _records(host)[0].reason is Reason.DEVTOOLS_BLOCK

    @pytest.mark.asyncio
    async def test_devtools_blocked_reason_maps_to_client_block(self, host: cdp_host.CdpHost) -> None:
        host.on_request_will_be_sent({"requestId": "3", "request": {"url": "https://cdn.com/c.js"}, "type": "Script"})
        host.on_loading_failed({"requestId": "3", "type": "Script", "errorText": "net::ERR_FAILED", "blockedReason": "inspector"})
        await host.flush()
        assert _records(host)[0].reason is Reason.DEVTOOLS_BLOCK

    @pytest.mark.asyncio
    async def test_subresource_filter_maps_to_client_block(self, host: cdp_host.CdpHost) -> None:
        host.on_request_will_be_sent({"requestId": "4", "request": {"url": "https://doubleclick.net/ad.js"}, "type": "Script"})
        host.on_loading_failed({"requestId": "4", "type": "Script", "errorText": "net::ERR_FAILED", "blockedReason": "subresource-filter"})
        await host.flush()
        assert _records(host)[0].reason is Reason.AD_TRACKER

    @pytest.mark.asyncio
    async def test_mixed_content_block_is_mixed_content(self, host: cdp_host.CdpHost) -> None:
        host.on_request_will_be_sent({"requestId": "5", "request": {"url": "http://x.com/a.js"}, "type": "Script"})
        host.on_loading_failed({"requestId": "5", "type": "Script", "errorText": "", "blockedReason": "mixed-content"})
        await host.flush()
        records = _records(host)
        assert [(r.url, r.reason) for r in records] == [("http://x.com/a.js", Reason.MIXED_CONTENT)]
        assert records[0].evidence == "HTTPS page https://site.com attempted to load HTTP script"
        assert records[0].status == "blocked"

    @pytest.mark.asyncio
    async def test_csp_block_left_to_page_listener(self, host: cdp_host.CdpHost) -> None:
        host.on_request_will_be_sent({"requestId": "6", "request": {"url": "https://evil.com/b.js"}, "type": "Script"})
        host.on_loading_failed({"requestId": "6", "type": "Script", "errorText": "net::ERR_BLOCKED_BY_CSP", "blockedReason": "csp"})
        await host._on_csp_violation({"blockedURI": "https://evil.com/b.js", "violatedDirective": "script-src"})
        await host.flush()
        assert [(r.url, r.reason) for r in _records(host)] == [("https://evil.com/b.js", Reason.CSP)]
        assert host._inspector.tracker.get_pending("6") is None

    @pytest.mark.asyncio
    async def test_main_document_headers_set_policy(self, host: cdp_host.CdpHost) -> None:
        host.on_request_will_be_sent({"requestId": "doc", "request": {"url": "https://site.com/"}, "type": "Document", "frameId": "TOP"})
        host.on_response_received({
            "requestId": "doc",
            "response": {"status": 200, "headers": {"Content-Security-Policy": "script-src 'self'"}},
        })
        host.on_loading_finished({"requestId": "doc"})
        await host.flush()
        policy = host._inspector.tracker.get_tab_policy(1)
        assert policy is not None
        assert policy.csp == "script-src 'self'"
        assert _records(host) == []

    @pytest.mark.asyncio
    async def test_csp_binding_reports_violation(self, host: cdp_host.CdpHost) -> None:
        await host._on_csp_violation({"blockedURI": "https://evil.com/x.js", "violatedDirective": "script-src"})
        assert _records(host)[0].reason is Reason.CSP
