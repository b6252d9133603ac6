"""
User-maintained domain suffixes whose scripts are never classified.

Matching is a raw hostname suffix test by default, so a stored
``example.com`` also suppresses ``notexample.com``.  Passing
``strict=True`` restricts matches to label boundaries
(``example.com`` and ``*.example.com`` only).
"""

from __future__ import annotations

import asyncio

from jsinspector.storage import kv
from jsinspector.utils import errors, logger
from jsinspector.utils import url as url_mod

log = logger.create_logger("IgnoreList")

STORE_KEY = "ignoreDomains"


class IgnoreList:
    """Ordered set of ignored domain suffixes, persisted under ``ignoreDomains``."""

    def __init__(self, store: kv.KeyValueStore | None = None, *, strict: bool = False) -> None:
        self._store = store
        self._strict = strict
        self._domains: list[str] = []
        self._lock = asyncio.Lock()

    @property
    def domains(self) -> list[str]:
        return list(self._domains)

    def replace(self, domains: list[str]) -> None:
        """Load domains without persisting (used when rehydrating)."""
        self._domains = []
        for raw in domains:
            if not isinstance(raw, str):
                continue
            domain = raw.strip().lower()
            if domain and domain not in self._domains:
                self._domains.append(domain)

    async def add(self, domain: str) -> bool:
        """Insert *domain* if new and persist the list.

        Returns ``True`` when the list changed.
        """
        domain = domain.strip().lower()
        if not domain or domain in self._domains:
            return False
        self._domains.append(domain)
        log.info("Domain ignored", {"domain": domain, "total": len(self._domains)})
        await self._persist()
        return True

    async def _persist(self) -> None:
        if self._store is None:
            return
        async with self._lock:
            try:
                await self._store.set({STORE_KEY: list(self._domains)})
            except errors.StoreError as exc:
                log.error("Failed to persist ignore list", {"error": errors.get_error_message(exc)})

    def matches_host(self, host: str) -> bool:
        if not host:
            return False
        for domain in self._domains:
            if self._strict:
                if host == domain or host.endswith("." + domain):
                    return True
            elif host.endswith(domain):
                return True
        return False

    def should_ignore(self, url: str) -> bool:
        """True iff the URL's hostname ends with a stored domain suffix."""
        return self.matches_host(url_mod.hostname_of(url))
