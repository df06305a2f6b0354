"""End-to-end tests for the startup migration against an in-memory store."""

from unittest.mock import AsyncMock

import pytest

from conftest import legacy_record
from jobflow.migration import (
    CURRENT_SCHEMA_VERSION,
    MigrationOrchestrator,
    detect_data_version,
    run_migration_if_needed,
)
from jobflow.models import DataVersion, MigrationState
from jobflow.store import MemoryStore
from jobflow.version import VersionRegistry


@pytest.mark.asyncio
async def test_dedup_against_existing_postings():
    existing = {"id": "p1", "url": "a", "title": "Mine", "status": "offer"}
    store = MemoryStore({
        "postings": [existing],
        "jobApplications": [legacy_record("a"), legacy_record("b")],
    })

    report = await run_migration_if_needed(store)

    postings = store.snapshot()["postings"]
    assert postings[0] == existing
    assert [p["url"] for p in postings] == ["a", "b"]
    assert postings[1]["id"] == "v1-b"
    assert postings[1]["interest"] == 4
    assert report.inserted_count == 1
    assert report.skipped_count == 1
    assert report.legacy_key == "jobApplications"
    assert report.state is MigrationState.DONE


@pytest.mark.asyncio
async def test_legacy_records_sharing_a_url_are_all_migrated():
    store = MemoryStore({"applications": [
        legacy_record("", id="m1"),
        legacy_record("", id="m2"),
        legacy_record("", id="m3"),
    ]})

    report = await run_migration_if_needed(store)

    assert [p["id"] for p in store.snapshot()["postings"]] == ["m1", "m2", "m3"]
    assert (report.inserted_count, report.skipped_count) == (3, 0)

    # A rerun without the version marker inserts nothing more.
    await VersionRegistry(store).set_version(0)
    report = await run_migration_if_needed(store)
    assert [p["id"] for p in store.snapshot()["postings"]] == ["m1", "m2", "m3"]
    assert (report.inserted_count, report.skipped_count) == (0, 3)


@pytest.mark.asyncio
async def test_legacy_key_priority_order():
    store = MemoryStore({
        "jobApplications": [],
        "applications": [legacy_record("from-applications")],
    })
    report = await run_migration_if_needed(store)
    assert report.legacy_key == "applications"

    store = MemoryStore({
        "jobApplications": [legacy_record("first")],
        "applications": [legacy_record("second")],
    })
    await run_migration_if_needed(store)
    assert [p["url"] for p in store.snapshot()["postings"]] == ["first"]


@pytest.mark.asyncio
async def test_backup_holds_raw_legacy_data():
    legacy = [legacy_record("a", interest=0, dateAdded="garbage")]
    store = MemoryStore({"applications": legacy})
    await run_migration_if_needed(store)
    data = store.snapshot()
    assert data["_v1_backup"] == legacy
    assert data["applications"] == legacy


@pytest.mark.asyncio
async def test_existing_backup_is_not_overwritten():
    store = MemoryStore({"_v1_backup": ["earlier"], "applications": [legacy_record("a")]})
    await run_migration_if_needed(store)
    assert store.snapshot()["_v1_backup"] == ["earlier"]


@pytest.mark.asyncio
@pytest.mark.parametrize("start", [None, 0, 1, 2])
async def test_version_is_current_after_run(start):
    initial = {"connections": [{"id": "c1", "name": "Ada"}]}
    if start is not None:
        initial["schemaVersion"] = start
    store = MemoryStore(initial)

    await run_migration_if_needed(store)

    assert await VersionRegistry(store).get_version() == CURRENT_SCHEMA_VERSION
    conn = store.snapshot()["connections"][0]
    assert conn["relationshipType"] == "other"
    assert conn["relationshipStrength"] == 2


@pytest.mark.asyncio
async def test_no_writes_when_up_to_date():
    store = MemoryStore({
        "schemaVersion": 3,
        "jobApplications": [legacy_record("a")],
        "connections": [{"id": "c1", "name": "Ada"}],
    })
    orchestrator = MigrationOrchestrator(store)
    report = await orchestrator.run()
    assert store.writes == []
    assert report.state is MigrationState.UP_TO_DATE
    assert orchestrator.state is MigrationState.UP_TO_DATE


@pytest.mark.asyncio
async def test_running_twice_matches_running_once():
    initial = {
        "schemaVersion": 1,
        "postings": [{"id": "p1", "url": "a"}],
        "applications": [legacy_record("a"), legacy_record("b"), legacy_record("c")],
        "connections": [{
            "id": "c1", "name": "Ada", "relationshipNotes": "x",
            "dateAdded": 5, "dateModified": 6,
        }],
    }
    once = MemoryStore(initial)
    await run_migration_if_needed(once)

    twice = MemoryStore(initial)
    await run_migration_if_needed(twice)
    writes_after_first = len(twice.writes)
    await run_migration_if_needed(twice)

    assert twice.snapshot() == once.snapshot()
    assert len(twice.writes) == writes_after_first


@pytest.mark.asyncio
async def test_rerun_after_crash_before_version_update():
    store = MemoryStore({"applications": [legacy_record("a"), legacy_record("b")]})
    registry = VersionRegistry(store)

    # Simulate a crash at the final step: everything written but the marker.
    registry_set = AsyncMock(side_effect=OSError("disk full"))
    orchestrator = MigrationOrchestrator(store)
    orchestrator._versions.set_version = registry_set
    with pytest.raises(OSError):
        await orchestrator.run()
    assert await registry.get_version() == 0
    assert len(store.snapshot()["postings"]) == 2

    report = await run_migration_if_needed(store)
    assert len(store.snapshot()["postings"]) == 2
    assert report.inserted_count == 0
    assert report.skipped_count == 2
    assert await registry.get_version() == 3


@pytest.mark.asyncio
async def test_store_failure_propagates_before_any_write():
    store = MemoryStore({"applications": [legacy_record("a")]})
    store.get = AsyncMock(side_effect=OSError("boom"))
    with pytest.raises(OSError):
        await run_migration_if_needed(store)
    assert store.writes == []


@pytest.mark.asyncio
async def test_empty_store_only_sets_version(store):
    report = await run_migration_if_needed(store)
    assert store.writes == [{"schemaVersion": 3}]
    assert report.inserted_count == 0
    assert report.connections_backfilled == 0


@pytest.mark.asyncio
async def test_custom_legacy_keys():
    store = MemoryStore({"savedJobs": [legacy_record("z")]})
    report = await run_migration_if_needed(store, legacy_keys=["savedJobs"], backup_key="_old")
    assert report.legacy_key == "savedJobs"
    assert store.snapshot()["_old"][0]["url"] == "z"


class TestDetectDataVersion:
    @pytest.mark.asyncio
    async def test_none(self, store):
        assert await detect_data_version(store) is DataVersion.NONE

    @pytest.mark.asyncio
    async def test_marker_two(self):
        store = MemoryStore({"schemaVersion": 2, "jobApplications": [legacy_record("a")]})
        assert await detect_data_version(store) is DataVersion.V2

    @pytest.mark.asyncio
    async def test_postings_without_marker(self):
        store = MemoryStore({"postings": [{"id": "p", "url": "a"}], "applications": [legacy_record("a")]})
        assert await detect_data_version(store) is DataVersion.V2

    @pytest.mark.asyncio
    async def test_legacy_only(self):
        store = MemoryStore({"applications": [legacy_record("a")]})
        assert await detect_data_version(store) is DataVersion.V1

    @pytest.mark.asyncio
    async def test_is_read_only(self):
        store = MemoryStore({"applications": [legacy_record("a")]})
        await detect_data_version(store)
        assert store.writes == []
