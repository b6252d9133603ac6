"""Shared fixtures for the test suite."""

from __future__ import annotations

import pytest

from jsinspector import config
from jsinspector.inspector import ScriptInspector
from jsinspector.models import events
from jsinspector.storage import kv

PAGE_URL = "https://site.com/index.html"
TAB = 7


@pytest.fixture()
def settings() -> config.Settings:
    """Default settings, independent of the environment file."""
    return config.Settings(_env_file=None)


@pytest.fixture()
def store() -> kv.MemoryStore:
    return kv.MemoryStore()


@pytest.fixture()
def inspector(store: kv.MemoryStore, settings: config.Settings) -> ScriptInspector:
    """An inspector with tab 7 already on https://site.com."""
    insp = ScriptInspector(store, settings)
    insp.on_navigation_committed(events.NavigationCommitted(tab_id=TAB, url=PAGE_URL, frame_id=0))
    return insp


def script_headers(**headers: str) -> list[events.HttpHeader]:
    """Build a header list from keyword args (underscores become dashes)."""
    return [events.HttpHeader(name=k.replace("_", "-"), value=v) for k, v in headers.items()]
