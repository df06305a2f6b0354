"""Persisted schema version marker."""

from __future__ import annotations

import logging

from jobflow.store import SCHEMA_VERSION_KEY, KeyValueStore

logger = logging.getLogger("jobflow")


class VersionRegistry:
    """Reads and writes the single integer schema version.

    Monotonicity is the caller's job; ``set_version`` writes whatever it is given.
    """

    def __init__(self, store: KeyValueStore, key: str = SCHEMA_VERSION_KEY):
        self._store = store
        self._key = key

    async def get_version(self) -> int:
        """Return the stored version, or 0 when none has been recorded."""
        result = await self._store.get([self._key])
        value = result.get(self._key)
        if value is None:
            return 0
        if isinstance(value, bool) or not isinstance(value, int):
            logger.warning("Ignoring non-integer schema version %r; treating as 0.", value)
            return 0
        return value

    async def set_version(self, version: int) -> None:
        await self._store.set({self._key: version})
        logger.debug("Schema version set to %d", version)
