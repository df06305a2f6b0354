"""Startup schema migration.

Brings whatever an older release left in the store up to schema 3:

  1. generation-1 applications found under a legacy key are transformed into
     postings and merged (by URL) into the current postings list, and the raw
     legacy list is archived under the backup key;
  2. connections get the fields introduced in schema 3;
  3. the version marker is advanced.

Safe to run on every start. Once the marker reads 3 nothing is written, and a
run interrupted before the marker update can simply be repeated: the URL merge
inserts nothing the first run already inserted.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from jobflow.merge import merge_by_natural_key, url_of
from jobflow.models import DataVersion, LegacyRecord, MigrationReport, MigrationState
from jobflow.store import (
    CONNECTIONS_KEY,
    LEGACY_KEYS,
    POSTINGS_KEY,
    SCHEMA_VERSION_KEY,
    V1_BACKUP_KEY,
    KeyValueStore,
    get_list,
)
from jobflow.transformers import backfill_connection_to_v3, transform_legacy_to_current
from jobflow.utils import now_ms
from jobflow.version import VersionRegistry

logger = logging.getLogger("jobflow")

CURRENT_SCHEMA_VERSION = 3


def find_legacy_dataset(
    stored: dict[str, Any], legacy_keys: Sequence[str] = LEGACY_KEYS
) -> tuple[str | None, list[Any]]:
    """First legacy key, in priority order, holding a non-empty list."""
    for key in legacy_keys:
        value = stored.get(key)
        if isinstance(value, list) and value:
            return key, value
    return None, []


class MigrationOrchestrator:
    """Runs the schema migration against an injected store."""

    def __init__(
        self,
        store: KeyValueStore,
        legacy_keys: Sequence[str] = LEGACY_KEYS,
        backup_key: str = V1_BACKUP_KEY,
    ):
        self._store = store
        self._versions = VersionRegistry(store)
        self._legacy_keys = tuple(legacy_keys)
        self._backup_key = backup_key
        self.state: MigrationState | None = None

    async def run(self) -> MigrationReport:
        """Migrate if the stored version is behind. Store errors propagate."""
        version = await self._versions.get_version()
        if version >= CURRENT_SCHEMA_VERSION:
            self.state = MigrationState.UP_TO_DATE
            logger.debug("Schema version %d is current, nothing to migrate.", version)
            return MigrationReport(self.state, version, version)

        logger.info(
            "Current schema version: %d, target: %d", version, CURRENT_SCHEMA_VERSION
        )
        report = MigrationReport(MigrationState.NEEDS_POSTING_MIGRATION, version, CURRENT_SCHEMA_VERSION)
        self.state = report.state
        now = now_ms()
        writes: list[dict[str, Any]] = []

        # Postings: everything is computed in memory before the first write.
        stored = await self._store.get([*self._legacy_keys, POSTINGS_KEY, self._backup_key])
        legacy_key, legacy_data = find_legacy_dataset(stored, self._legacy_keys)
        if legacy_data:
            logger.info("Found %d V1 postings under key: %s", len(legacy_data), legacy_key)
            migrated = [
                transform_legacy_to_current(LegacyRecord.from_dict(raw), now).to_dict()
                for raw in legacy_data
                if isinstance(raw, dict)
            ]
            if len(migrated) != len(legacy_data):
                logger.warning(
                    "Ignored %d legacy entries that are not records.",
                    len(legacy_data) - len(migrated),
                )
            existing = stored.get(POSTINGS_KEY)
            existing = existing if isinstance(existing, list) else []
            result = merge_by_natural_key(existing, migrated, url_of)
            report.legacy_key = legacy_key
            report.inserted_count = result.inserted_count
            report.skipped_count = result.skipped_count
            writes.append({POSTINGS_KEY: result.merged})
            if self._backup_key not in stored:
                writes.append({self._backup_key: legacy_data})
            else:
                logger.debug("Backup key %s already present, leaving it as is.", self._backup_key)

        # Connections
        self.state = MigrationState.NEEDS_CONNECTION_BACKFILL
        if version < 3:
            connections = await get_list(self._store, CONNECTIONS_KEY)
            if not connections:
                logger.info("No connections to migrate")
            else:
                backfilled = [
                    backfill_connection_to_v3(c, now).to_dict() if isinstance(c, dict) else c
                    for c in connections
                ]
                report.connections_backfilled = len(backfilled)
                writes.append({CONNECTIONS_KEY: backfilled})

        for items in writes:
            await self._store.set(items)
        if legacy_data:
            logger.info(
                "Migrated %d new postings, %d duplicates skipped",
                report.inserted_count,
                report.skipped_count,
            )
        if report.connections_backfilled:
            logger.info(
                "Migrated %d connections to V3 schema", report.connections_backfilled
            )

        await self._versions.set_version(CURRENT_SCHEMA_VERSION)
        self.state = report.state = MigrationState.DONE
        logger.info("Schema version updated to %d", CURRENT_SCHEMA_VERSION)
        return report


async def run_migration_if_needed(store: KeyValueStore, **kwargs) -> MigrationReport:
    """Entry point called once at startup, before anything else reads the store."""
    return await MigrationOrchestrator(store, **kwargs).run()


async def detect_data_version(
    store: KeyValueStore, legacy_keys: Sequence[str] = LEGACY_KEYS
) -> DataVersion:
    """Read-only guess at which generation of data the store holds.

    Looks at the raw marker, not VersionRegistry, so it can briefly disagree
    with the orchestrator (e.g. after a migration the legacy keys are still
    populated and no longer masked by a version-2 marker).
    """
    stored = await store.get([SCHEMA_VERSION_KEY, POSTINGS_KEY, *legacy_keys])
    marker = stored.get(SCHEMA_VERSION_KEY)
    postings = stored.get(POSTINGS_KEY)

    if marker == 2 and not isinstance(marker, bool):
        return DataVersion.V2
    if marker is None and isinstance(postings, list) and postings:
        return DataVersion.V2
    legacy_key, _ = find_legacy_dataset(stored, legacy_keys)
    if legacy_key is not None:
        return DataVersion.V1
    return DataVersion.NONE
