"""Key-value store collaborator holding ``buckets`` and ``ignoreDomains``.

Two backends are provided: an in-process ``MemoryStore`` and a
``JsonFileStore`` that keeps the whole collection in one JSON file
(under ``.cache/`` by default).  Both suspend the caller once per
access, like the browser storage API they stand in for.
"""

from __future__ import annotations

import asyncio
import copy
import json
import os
import pathlib
from collections.abc import Iterable
from typing import Any, Protocol

from jsinspector.utils import errors, logger

log = logger.create_logger("Store")


class KeyValueStore(Protocol):
    """Asynchronous whole-value key-value store."""

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        """Return the stored values for the present *keys*."""
        ...

    async def set(self, items: dict[str, Any]) -> None:
        """Overwrite each key in *items* with its value."""
        ...


class MemoryStore:
    """Dict-backed store; values are deep-copied in and out."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        await asyncio.sleep(0)
        return {k: copy.deepcopy(self._data[k]) for k in keys if k in self._data}

    async def set(self, items: dict[str, Any]) -> None:
        await asyncio.sleep(0)
        for key, value in items.items():
            self._data[key] = copy.deepcopy(value)

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)


class JsonFileStore:
    """Store backed by a single JSON object on disk.

    A missing file reads as empty.  A malformed file is logged and read as
    empty; the next write replaces it.  I/O failures raise ``StoreError``.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = pathlib.Path(path)

    @property
    def path(self) -> pathlib.Path:
        return self._path

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise errors.StoreError(f"cannot read {self._path}: {exc}") from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            log.warn("Store file is malformed, treating as empty", {"path": str(self._path), "error": str(exc)})
            return {}
        if not isinstance(data, dict):
            log.warn("Store file is not a JSON object, treating as empty", {"path": str(self._path)})
            return {}
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as exc:
            raise errors.StoreError(f"cannot write {self._path}: {exc}") from exc

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        await asyncio.sleep(0)
        data = self._read_all()
        return {k: data[k] for k in keys if k in data}

    async def set(self, items: dict[str, Any]) -> None:
        await asyncio.sleep(0)
        data = self._read_all()
        data.update(items)
        self._write_all(data)
