"""Async key-value storage: the interface the migration engine talks to.

Values are whole JSON-compatible documents per key. There is no locking and
no atomic multi-key write; callers must not rely on either.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, Protocol

from jobflow.utils import retry_async

logger = logging.getLogger("jobflow")

# Storage keys
SCHEMA_VERSION_KEY = "schemaVersion"
POSTINGS_KEY = "postings"
CONNECTIONS_KEY = "connections"
SETTINGS_KEY = "settings"
V1_BACKUP_KEY = "_v1_backup"

# Keys an older release stored its applications under, in lookup priority order.
LEGACY_KEYS = ("jobApplications", "applications")


class StoreError(Exception):
    """Raised when the underlying storage cannot be read or written."""


class KeyValueStore(Protocol):
    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        """Return a mapping of the requested keys that are present."""
        ...

    async def set(self, items: dict[str, Any]) -> None:
        """Write each key's whole value."""
        ...


class MemoryStore:
    """In-process store. Every ``set`` call is appended to ``writes``."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self.writes: list[dict[str, Any]] = []

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        return {k: copy.deepcopy(self._data[k]) for k in keys if k in self._data}

    async def set(self, items: dict[str, Any]) -> None:
        items = copy.deepcopy(items)
        self.writes.append(items)
        self._data.update(items)

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)


class JsonFileStore:
    """All keys kept in a single JSON document on disk.

    Writes go to a temp file in the same directory and are moved into place
    with ``os.replace``, so a crash never leaves a half-written document.
    """

    def __init__(self, path: Path | str):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        with open(self._path, encoding="utf-8") as f:
            text = f.read()
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise StoreError(f"Store file {self._path} does not hold a JSON object")
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    @retry_async(max_retries=3, backoff_base=0.5, retry_on=(OSError,))
    async def _load(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._read_all)

    @retry_async(max_retries=3, backoff_base=0.5, retry_on=(OSError,))
    async def _save(self, data: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write_all, data)

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        try:
            data = await self._load()
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read {self._path}: {e}") from e
        return {k: data[k] for k in keys if k in data}

    async def set(self, items: dict[str, Any]) -> None:
        try:
            data = await self._load()
            data.update(items)
            await self._save(data)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to write {self._path}: {e}") from e
        logger.debug("Wrote keys %s to %s", sorted(items), self._path)


async def get_list(store: KeyValueStore, key: str) -> list[Any]:
    """Read a key expected to hold a list; anything else reads as empty."""
    result = await store.get([key])
    value = result.get(key)
    return value if isinstance(value, list) else []
