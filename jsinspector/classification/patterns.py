"""
Fixed pattern tables consulted by the classification engine.

Ad/tracker detection is a plain case-insensitive substring test against
the full URL, so entries cover both provider hosts and the path or file
fragments that content blockers commonly key on.
"""

from __future__ import annotations

# ============================================================================
# Ad / Tracker Substrings
# ============================================================================

AD_TRACKER_PATTERNS: tuple[str, ...] = (
    "doubleclick",
    "/ads/",
    "googletagmanager",
    "gtm.js",
    "analytics.js",
    "ga.js",
    "adservice",
    "taboola",
    "outbrain",
    "pixel",
    "track",
    "beacon",
)

# ============================================================================
# MIME Types
# ============================================================================

JAVASCRIPT_MIME_TYPES: frozenset[str] = frozenset({
    "application/javascript",
    "text/javascript",
    "application/x-javascript",
    "text/ecmascript",
    "application/ecmascript",
})

# ============================================================================
# Error Codes
# ============================================================================

# Reported by the browser when an extension or DevTools request blocking
# cancelled the load.
CLIENT_BLOCKED_ERROR = "ERR_BLOCKED_BY_CLIENT"


def match_ad_tracker(url: str) -> str | None:
    """Return the first ad/tracker substring found in *url*, if any."""
    lowered = url.lower()
    for pattern in AD_TRACKER_PATTERNS:
        if pattern in lowered:
            return pattern
    return None


def is_javascript_content_type(content_type: str | None) -> bool:
    """True when the media type (parameters stripped) is a JS MIME type."""
    if not content_type:
        return False
    media_type = content_type.lower().split(";", 1)[0].strip()
    return media_type in JAVASCRIPT_MIME_TYPES
