"""
Crash Alert - Incident Logging Tests

Tests for:
- IncidentLogger.record() building and persisting incidents
- InMemoryIncidentStore append-only behavior
- SqlIncidentStore round trip on a temporary SQLite file
- Failure mapping to PersistenceFailure

Run with: pytest tests/test_incidents.py -v
"""

import asyncio
from datetime import timezone

import pytest

from crash_alert.core.exceptions import ConfigurationError, PersistenceFailure
from crash_alert.core.incidents import (
    IncidentLogger,
    InMemoryIncidentStore,
    create_incident_store,
)
from crash_alert.core.types import (
    EvidenceRef,
    FacilityCategory,
    Incident,
    IncidentId,
    ResolvedFacility,
)
from crash_alert.storage import create_db_engine, init_db
from crash_alert.storage.incidents import SqlIncidentStore

from conftest import CRASH_SITE, FailingIncidentStore, make_facility


HOSPITAL = FacilityCategory.HOSPITAL
POLICE = FacilityCategory.POLICE


def resolved(category: FacilityCategory, facility_id: str, distance: float) -> ResolvedFacility:
    return ResolvedFacility(
        category=category,
        facility=make_facility(facility_id, f"{facility_id} name", category, 106.81, -6.17),
        distance_meters=distance,
    )


EVIDENCE = EvidenceRef(
    field_name="file1",
    storage_ref="file1_abc.mp4",
    original_name="dashcam.mp4",
    media_type="video/mp4",
    size_bytes=2048,
)


class TestIncidentLogger:
    """Tests for IncidentLogger.record()."""

    @pytest.mark.asyncio
    async def test_record_persists_incident(self, incident_store):
        logger = IncidentLogger(incident_store)
        facilities = [resolved(HOSPITAL, "rs-1", 1200.0), resolved(POLICE, "pol-1", 800.0)]

        incident = await logger.record(CRASH_SITE, facilities, [EVIDENCE])

        assert incident.coordinate == CRASH_SITE
        assert [e.category for e in incident.facilities] == [HOSPITAL, POLICE]
        assert incident.evidence == (EVIDENCE,)
        assert incident.timestamp.tzinfo is not None
        assert await incident_store.get(incident.id) == incident

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, incident_store):
        logger = IncidentLogger(incident_store)
        ids = {(await logger.record(CRASH_SITE, [])).id for _ in range(20)}
        assert len(ids) == 20

    @pytest.mark.asyncio
    async def test_zero_facilities_allowed(self, incident_store):
        incident = await IncidentLogger(incident_store).record(CRASH_SITE, [])
        assert incident.facilities == ()
        assert await incident_store.count() == 1

    @pytest.mark.asyncio
    async def test_distance_beyond_radius_rejected(self, incident_store):
        logger = IncidentLogger(incident_store, max_radius_meters=1000)
        with pytest.raises(ValueError):
            await logger.record(CRASH_SITE, [resolved(HOSPITAL, "rs-1", 1500.0)])
        assert await incident_store.count() == 0

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self):
        logger = IncidentLogger(FailingIncidentStore(PersistenceFailure("disk full")))
        with pytest.raises(PersistenceFailure, match="disk full"):
            await logger.record(CRASH_SITE, [])

    @pytest.mark.asyncio
    async def test_unexpected_store_error_wrapped(self):
        logger = IncidentLogger(FailingIncidentStore(OSError("read-only filesystem")))
        with pytest.raises(PersistenceFailure) as exc_info:
            await logger.record(CRASH_SITE, [])
        assert exc_info.value.details["recorded"] is False
        assert exc_info.value.status_code == 502


class TestIncidentInvariants:
    """Domain-level constraints on Incident."""

    def test_duplicate_category_rejected(self):
        with pytest.raises(ValueError):
            Incident(
                id=IncidentId("x"),
                coordinate=CRASH_SITE,
                timestamp=None,
                facilities=(resolved(HOSPITAL, "a", 1.0), resolved(HOSPITAL, "b", 2.0)),
            )

    def test_negative_distance_rejected(self):
        with pytest.raises(ValueError):
            resolved(HOSPITAL, "a", -1.0)


class TestInMemoryIncidentStore:
    """Tests for InMemoryIncidentStore."""

    @pytest.mark.asyncio
    async def test_list_recent_newest_first(self, incident_store):
        logger = IncidentLogger(incident_store)
        first = await logger.record(CRASH_SITE, [])
        second = await logger.record(CRASH_SITE, [])

        recent = await incident_store.list_recent(limit=10)
        assert [i.id for i in recent] == [second.id, first.id]
        assert [i.id for i in await incident_store.list_recent(limit=1)] == [second.id]

    @pytest.mark.asyncio
    async def test_duplicate_append_rejected(self, incident_store):
        incident = await IncidentLogger(incident_store).record(CRASH_SITE, [])
        with pytest.raises(PersistenceFailure):
            await incident_store.append(incident)
        assert await incident_store.count() == 1

    @pytest.mark.asyncio
    async def test_lock_timeout_is_persistence_failure(self):
        store = InMemoryIncidentStore(lock_timeout_seconds=0.05)
        incident = Incident(id=IncidentId("held"), coordinate=CRASH_SITE, timestamp=None)
        store._lock.acquire()
        try:
            with pytest.raises(PersistenceFailure, match="timed out"):
                await store.append(incident)
        finally:
            store._lock.release()

    @pytest.mark.asyncio
    async def test_waiting_writer_keeps_event_loop_running(self):
        store = InMemoryIncidentStore(lock_timeout_seconds=2.0)
        incident = Incident(id=IncidentId("queued"), coordinate=CRASH_SITE, timestamp=None)
        ticks = []

        async def release_later():
            for i in range(5):
                ticks.append(i)
                await asyncio.sleep(0.01)
            store._lock.release()

        store._lock.acquire()
        await asyncio.gather(store.append(incident), release_later())

        assert ticks == [0, 1, 2, 3, 4]
        assert await store.get("queued") == incident

    @pytest.mark.asyncio
    async def test_concurrent_records_all_stored(self, incident_store):
        logger = IncidentLogger(incident_store)
        incidents = await asyncio.gather(*(logger.record(CRASH_SITE, []) for _ in range(25)))
        assert await incident_store.count() == 25
        assert len({i.id for i in incidents}) == 25

    @pytest.mark.asyncio
    async def test_unknown_id(self, incident_store):
        assert await incident_store.get("missing") is None

    def test_factory_rejects_unknown_backend(self, test_settings):
        settings = test_settings.model_copy(update={"storage_backend": "mongo"})
        with pytest.raises(ConfigurationError):
            create_incident_store(settings)


@pytest.mark.integration
class TestSqlIncidentStore:
    """Tests for SqlIncidentStore on SQLite."""

    @pytest.fixture
    def sql_store(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'incidents.db'}", timeout_seconds=1.0)
        init_db(engine)
        yield SqlIncidentStore(engine)
        engine.dispose()

    @pytest.mark.asyncio
    async def test_round_trip(self, sql_store):
        logger = IncidentLogger(sql_store)
        facilities = [resolved(HOSPITAL, "rs-1", 1200.5), resolved(POLICE, "pol-1", 800.25)]
        recorded = await logger.record(CRASH_SITE, facilities, [EVIDENCE])

        loaded = await sql_store.get(recorded.id)

        assert loaded.id == recorded.id
        assert loaded.coordinate == CRASH_SITE
        assert [e.category for e in loaded.facilities] == [HOSPITAL, POLICE]
        assert [e.facility.id for e in loaded.facilities] == ["rs-1", "pol-1"]
        assert [e.distance_meters for e in loaded.facilities] == [1200.5, 800.25]
        assert loaded.evidence == (EVIDENCE,)
        assert loaded.timestamp.tzinfo is not None
        assert loaded.timestamp.astimezone(timezone.utc) == recorded.timestamp

    @pytest.mark.asyncio
    async def test_list_recent_and_count(self, sql_store):
        logger = IncidentLogger(sql_store)
        for _ in range(3):
            await logger.record(CRASH_SITE, [])

        assert await sql_store.count() == 3
        assert len(await sql_store.list_recent(limit=2)) == 2
        assert await sql_store.list_recent(limit=0) == []

    @pytest.mark.asyncio
    async def test_unknown_id(self, sql_store):
        assert await sql_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_id_is_persistence_failure(self, sql_store):
        incident = await IncidentLogger(sql_store).record(CRASH_SITE, [])
        with pytest.raises(PersistenceFailure):
            await sql_store.append(incident)
        assert await sql_store.count() == 1

    @pytest.mark.asyncio
    async def test_missing_schema_is_persistence_failure(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'bare.db'}")
        try:
            logger = IncidentLogger(SqlIncidentStore(engine))
            with pytest.raises(PersistenceFailure):
                await logger.record(CRASH_SITE, [])
        finally:
            engine.dispose()
