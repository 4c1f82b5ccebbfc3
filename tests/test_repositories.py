"""SQL repositories against a throwaway SQLite file via aiosqlite."""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config import AlertSeverity, AlertType, VisitStatus
from src.core import DuplicateAlertException, ResourceNotFoundException
from src.infrastructure.database import Base
from src.monitoring.domain import Alert
from src.monitoring.infrastructure import SQLAlchemyAlertRepository, SQLAlchemyVisitRepository
from src.presence.domain import AttendanceRecord, Coordinates
from src.presence.infrastructure import SQLAlchemyAttendanceRepository, SQLAlchemyPresenceRepository
from tests.helpers import NOW, make_visit


@pytest.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'monitor.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def visits(session_maker):
    return SQLAlchemyVisitRepository(session_maker)


@pytest.fixture
def alerts(session_maker):
    return SQLAlchemyAlertRepository(session_maker)


def new_alert(visit_id="visit-1", alert_type=AlertType.LATE_ARRIVAL):
    return Alert(
        id=None, alert_type=alert_type, severity=AlertSeverity.HIGH,
        message="late", visit_id=visit_id, representative_id="rep-1",
        metadata={"delay_minutes": 5}, created_at=NOW, updated_at=NOW
    )


# ----- visits -----

async def test_visit_round_trip_keeps_utc(visits):
    await visits.add(make_visit())

    stored = await visits.get("visit-1")
    assert stored.scheduled_start == NOW
    assert stored.scheduled_start.tzinfo is not None
    assert stored.customer_name == "Northwind Traders"


async def test_list_active_excludes_terminal(visits):
    await visits.add(make_visit("visit-1"))
    await visits.add(make_visit("visit-2", status=VisitStatus.CANCELLED))
    await visits.add(make_visit("visit-3", status=VisitStatus.COMPLETED))

    assert [v.id for v in await visits.list_active()] == ["visit-1"]


async def test_update_flags_is_conditional_on_status(visits):
    await visits.add(make_visit())

    applied = await visits.update_flags(
        "visit-1", VisitStatus.LATE, True, False, expected_status=VisitStatus.IN_PROGRESS
    )
    assert not applied
    assert (await visits.get("visit-1")).status == VisitStatus.SCHEDULED

    applied = await visits.update_flags(
        "visit-1", VisitStatus.LATE, True, False, expected_status=VisitStatus.SCHEDULED
    )
    assert applied
    stored = await visits.get("visit-1")
    assert stored.status == VisitStatus.LATE
    assert stored.is_late


async def test_update_flags_on_missing_visit(visits):
    assert not await visits.update_flags("missing", VisitStatus.LATE, True, False)


async def test_save_persists_transition(visits):
    await visits.add(make_visit())
    visit = await visits.get("visit-1")
    visit.check_in(NOW + timedelta(minutes=3))
    await visits.save(visit)

    stored = await visits.get("visit-1")
    assert stored.status == VisitStatus.IN_PROGRESS
    assert stored.actual_start == NOW + timedelta(minutes=3)


async def test_save_missing_visit(visits):
    with pytest.raises(ResourceNotFoundException):
        await visits.save(make_visit("missing"))


async def test_list_filters(visits):
    await visits.add(make_visit("visit-1"))
    await visits.add(make_visit("visit-2", representative_id="rep-2"))

    assert [v.id for v in await visits.list(representative_id="rep-2")] == ["visit-2"]
    assert len(await visits.list(status=VisitStatus.SCHEDULED)) == 2
    assert await visits.list(status=VisitStatus.LATE) == []


# ----- alerts -----

async def test_alert_insert_assigns_id_and_round_trips(alerts):
    alert = await alerts.insert(new_alert())

    stored = await alerts.get(alert.id)
    assert stored.alert_type == AlertType.LATE_ARRIVAL
    assert stored.metadata == {"delay_minutes": 5}
    assert stored.created_at == NOW


async def test_second_open_alert_for_same_key_is_rejected(alerts):
    await alerts.insert(new_alert())
    with pytest.raises(DuplicateAlertException):
        await alerts.insert(new_alert())


async def test_other_type_or_scope_is_allowed(alerts):
    await alerts.insert(new_alert())
    await alerts.insert(new_alert(alert_type=AlertType.TIME_EXCEEDED))
    await alerts.insert(new_alert(visit_id="visit-2"))

    assert len(await alerts.list_open()) == 3


async def test_resolved_alert_frees_the_key(alerts):
    first = await alerts.insert(new_alert())
    first.resolve("ops", NOW + timedelta(minutes=1))
    assert await alerts.update_resolution(first)

    second = await alerts.insert(new_alert())
    assert second.id != first.id
    assert (await alerts.find_open(first.scope_key, AlertType.LATE_ARRIVAL)).id == second.id


async def test_unread_and_stats(alerts):
    first = await alerts.insert(new_alert())
    await alerts.insert(new_alert(visit_id="visit-2"))
    first.mark_read(NOW)
    await alerts.update_read_state(first)
    first.resolve("ops", NOW)
    await alerts.update_resolution(first)

    assert [a.visit_id for a in await alerts.list_unread()] == ["visit-2"]
    stats = await alerts.count_by_state()
    assert (stats.total, stats.open, stats.unread, stats.resolved) == (2, 1, 1, 1)
    assert stats.open_by_severity == {"high": 1}


async def test_list_filters_by_severity_and_type(alerts):
    await alerts.insert(new_alert())
    overtime = new_alert(visit_id="visit-2", alert_type=AlertType.TIME_EXCEEDED)
    overtime.severity = AlertSeverity.LOW
    await alerts.insert(overtime)

    assert [a.visit_id for a in await alerts.list_open(alert_type=AlertType.TIME_EXCEEDED)] == ["visit-2"]
    assert [a.visit_id for a in await alerts.list_unread(severity=AlertSeverity.HIGH)] == ["visit-1"]
    assert await alerts.list_open(severity=AlertSeverity.CRITICAL) == []


async def test_escalation_of_stale_copy_does_not_reopen(alerts):
    alert = await alerts.insert(new_alert())
    stale = await alerts.get(alert.id)

    current = await alerts.get(alert.id)
    current.resolve("ops", NOW + timedelta(minutes=20))
    assert await alerts.update_resolution(current)

    stale.escalate(NOW + timedelta(minutes=31))
    assert not await alerts.update_escalation(stale, expected_count=0)

    stored = await alerts.get(alert.id)
    assert stored.is_resolved
    assert stored.resolved_by == "ops"
    assert stored.escalation_count == 0
    assert await alerts.find_open(alert.scope_key, AlertType.LATE_ARRIVAL) is None


async def test_escalation_writes_only_escalation_columns(alerts):
    alert = await alerts.insert(new_alert())
    stale = await alerts.get(alert.id)

    current = await alerts.get(alert.id)
    current.mark_read(NOW + timedelta(minutes=5))
    current.acknowledge("alice", NOW + timedelta(minutes=6))
    await alerts.update_read_state(current)
    await alerts.update_acknowledgement(current)

    stale.escalate(NOW + timedelta(minutes=31))
    assert await alerts.update_escalation(stale, expected_count=0)
    assert not await alerts.update_escalation(stale, expected_count=0)

    stored = await alerts.get(alert.id)
    assert stored.escalation_count == 1
    assert stored.last_escalated_at == NOW + timedelta(minutes=31)
    assert stored.is_read
    assert stored.acknowledged_by == "alice"


async def test_second_resolution_is_not_written(alerts):
    alert = await alerts.insert(new_alert())
    first, second = await alerts.get(alert.id), await alerts.get(alert.id)
    first.resolve("alice", NOW)
    second.resolve("bob", NOW + timedelta(minutes=1))

    assert await alerts.update_resolution(first)
    assert not await alerts.update_resolution(second)
    assert (await alerts.get(alert.id)).resolved_by == "alice"


async def test_write_breaking_open_uniqueness_is_a_duplicate(alerts):
    first = await alerts.insert(new_alert())
    first.resolve("ops", NOW)
    await alerts.update_resolution(first)
    await alerts.insert(new_alert())

    with pytest.raises(DuplicateAlertException):
        await alerts._conditional_update(first, "alert.reopen", [], is_resolved=False)
    assert len(await alerts.list_open()) == 1


async def test_unknown_alert_ids(alerts):
    assert await alerts.get("not-a-uuid") is None
    alert = new_alert()
    alert.id = "not-a-uuid"
    with pytest.raises(ResourceNotFoundException):
        await alerts.update_resolution(alert)
    alert.id = "00000000-0000-0000-0000-000000000000"
    with pytest.raises(ResourceNotFoundException):
        await alerts.update_read_state(alert)


# ----- presence -----

async def test_presence_upsert_never_moves_backwards(session_maker):
    repo = SQLAlchemyPresenceRepository(session_maker)
    await repo.upsert_ping("rep-1", Coordinates(1.0, 2.0), NOW)
    record = await repo.upsert_ping("rep-1", Coordinates(3.0, 4.0), NOW - timedelta(minutes=5))

    assert record.last_seen == NOW
    assert await repo.get_last_seen("rep-1") == NOW
    assert (await repo.get("rep-1")).coordinates == Coordinates(1.0, 2.0)

    await repo.upsert_ping("rep-1", None, NOW + timedelta(minutes=1))
    assert (await repo.get("rep-1")).coordinates is None
    assert [r.representative_id for r in await repo.list_records()] == ["rep-1"]


async def test_attendance_save_and_get(session_maker):
    repo = SQLAlchemyAttendanceRepository(session_maker)
    record = AttendanceRecord(representative_id="rep-1")
    record.check_in(NOW)
    await repo.save(record)

    record.check_out(NOW + timedelta(hours=2))
    await repo.save(record)

    stored = await repo.get("rep-1")
    assert stored.total_hours == 2.0
    assert stored.check_out_time == NOW + timedelta(hours=2)
    assert await repo.get("rep-2") is None
