"""
URL helpers for origin resolution and script-likeness heuristics.
"""

from __future__ import annotations

from urllib import parse

_DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}

_JS_QUERY_HINTS = ("format=js", "type=js", "mime=application/javascript")


def _split(url: str) -> parse.SplitResult | None:
    try:
        parts = parse.urlsplit(url)
        # Accessing .port validates it; a malformed port raises ValueError.
        parts.port  # noqa: B018
    except (ValueError, TypeError, AttributeError):
        return None
    return parts


def get_origin(url: str) -> str | None:
    """Return ``scheme://host[:port]`` for *url*, or ``None`` if unparseable.

    Default ports are omitted so ``https://a.com:443`` and ``https://a.com``
    share an origin.
    """
    parts = _split(url)
    if parts is None or not parts.scheme or not parts.hostname:
        return None
    scheme = parts.scheme.lower()
    host = parts.hostname
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def hostname_of(url: str) -> str:
    """Extract the lower-cased hostname, or an empty string."""
    parts = _split(url)
    if parts is None:
        return ""
    return parts.hostname or ""


def scheme_of(url: str) -> str:
    """Return the lower-cased scheme of *url* (``""`` when absent)."""
    parts = _split(url)
    if parts is None:
        return ""
    return parts.scheme.lower()


def is_http(url: str) -> bool:
    return scheme_of(url) == "http"


def is_https(url: str) -> bool:
    return scheme_of(url) == "https"


def is_likely_javascript_url(url: str) -> bool:
    """Guess whether *url* points at a JavaScript resource.

    Checks for a ``.js`` path suffix, a ``/js/`` path segment, or query
    parameters that ask for JS output (``format=js``, ``type=js``,
    ``mime=application/javascript``).
    """
    parts = _split(url)
    if parts is None or not parts.scheme:
        return False
    path = parts.path.lower()
    if path.endswith(".js") or "/js/" in path:
        return True
    query = parts.query.lower()
    return any(hint in query for hint in _JS_QUERY_HINTS)
