"""
Rule pipeline that explains why a script load executed or was blocked.

Completed loads are checked in strict priority order, first match wins:

1. Cross-Origin/MIME  - ``nosniff`` with a non-JavaScript content type
2. Network Error      - HTTP status >= 400, or 0 (no response)
3. Ad/Tracker Blocker - URL contains a known ad/tracker substring
4. Mixed Content      - HTTPS page loading an HTTP script
5. Executed

Failed loads take the error path: a client-side block is attributed to an
ad/tracker blocker when the URL matches a pattern and to DevTools request
blocking otherwise; every other error code is a network error.

All functions here are pure.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from jsinspector.classification import patterns
from jsinspector.models.records import Reason, Record
from jsinspector.utils import url as url_mod

DEFAULT_POLICY_EXCERPT = 300

INLINE_SOURCE = "(inline/eval)"

# A rule inspects the load and returns (reason, evidence) when it matches.
_Rule = Callable[[str, int, Mapping[str, str], str | None], tuple[Reason, str] | None]


# ============================================================================
# Completion Rules
# ============================================================================


def _mime_rule(url: str, status_code: int, headers: Mapping[str, str], page_origin: str | None) -> tuple[Reason, str] | None:
    nosniff = headers.get("x-content-type-options", "").strip().lower() == "nosniff"
    content_type = headers.get("content-type", "")
    if nosniff and not patterns.is_javascript_content_type(content_type):
        return Reason.CROSS_ORIGIN_MIME, f"X-Content-Type-Options: nosniff; Content-Type: {content_type or 'missing'}"
    return None


def _status_rule(url: str, status_code: int, headers: Mapping[str, str], page_origin: str | None) -> tuple[Reason, str] | None:
    if status_code >= 400 or status_code == 0:
        return Reason.NETWORK_ERROR, f"HTTP {status_code}"
    return None


def _ad_tracker_rule(url: str, status_code: int, headers: Mapping[str, str], page_origin: str | None) -> tuple[Reason, str] | None:
    matched = patterns.match_ad_tracker(url)
    if matched is not None:
        return Reason.AD_TRACKER, f"Matched ad/tracker pattern: {matched}"
    return None


def _mixed_content_evidence(page_origin: str | None) -> str:
    return f"HTTPS page {page_origin or 'unknown'} attempted to load HTTP script"


def _mixed_content_rule(url: str, status_code: int, headers: Mapping[str, str], page_origin: str | None) -> tuple[Reason, str] | None:
    if page_origin and url_mod.is_https(page_origin) and url_mod.is_http(url):
        return Reason.MIXED_CONTENT, _mixed_content_evidence(page_origin)
    return None


COMPLETION_RULES: tuple[_Rule, ...] = (
    _mime_rule,
    _status_rule,
    _ad_tracker_rule,
    _mixed_content_rule,
)


# ============================================================================
# Public API
# ============================================================================


def classify(
    url: str,
    status_code: int | None,
    headers: Mapping[str, str] | None = None,
    error_code: str | None = None,
    page_origin: str | None = None,
    *,
    errored: bool = False,
) -> Record:
    """Classify one script load.

    Args:
        url: The script URL.
        status_code: HTTP status of the completed load (``None`` on the
            error path).
        headers: Lower-cased response header map; may be empty.
        error_code: Raw browser error string for failed loads.
        page_origin: Origin of the page that owns the load.
        errored: Force the error path even without an error code.

    Returns:
        A new record; ``Executed`` when no rule matched.
    """
    if errored or error_code:
        return classify_error(url, error_code)

    status = status_code if status_code is not None else 0
    header_map = headers or {}
    for rule in COMPLETION_RULES:
        matched = rule(url, status, header_map, page_origin)
        if matched is not None:
            reason, evidence = matched
            return Record.for_reason(url, reason, evidence)
    return Record.for_reason(url, Reason.EXECUTED)


def classify_error(url: str, error_code: str | None) -> Record:
    """Classify a load the browser reported as failed."""
    error = error_code or ""
    if patterns.CLIENT_BLOCKED_ERROR in error:
        matched = patterns.match_ad_tracker(url)
        if matched is not None:
            return Record.for_reason(url, Reason.AD_TRACKER, f"{error} (matched ad/tracker pattern: {matched})")
        return Record.for_reason(
            url, Reason.DEVTOOLS_BLOCK, f"{patterns.CLIENT_BLOCKED_ERROR} (likely DevTools Blocked URLs)"
        )
    return Record.for_reason(url, Reason.NETWORK_ERROR, error or "Request failed without an error code")


def classify_blocked_mixed_content(url: str, page_origin: str | None) -> Record:
    """Build the ``Mixed Content`` record for a load the browser refused."""
    return Record.for_reason(url, Reason.MIXED_CONTENT, _mixed_content_evidence(page_origin))


def classify_csp_violation(
    blocked_uri: str | None,
    violated_directive: str | None,
    effective_directive: str | None,
    original_policy: str | None,
    *,
    excerpt: int = DEFAULT_POLICY_EXCERPT,
) -> Record:
    """Build the ``CSP`` record for an in-page policy-violation report.

    The policy copy is capped at ``DEFAULT_POLICY_EXCERPT`` characters
    whatever *excerpt* asks for.
    """
    directive = violated_directive or effective_directive or ""
    policy = (original_policy or "")[: min(excerpt, DEFAULT_POLICY_EXCERPT)]
    return Record.for_reason(
        blocked_uri or INLINE_SOURCE,
        Reason.CSP,
        f"Violated: {directive}; Policy: {policy}",
    )
