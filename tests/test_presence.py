from datetime import timedelta

import pytest

from src.config import AlertType, AttendanceStatus
from src.core import DomainException, ValidationException
from src.monitoring.application import SLAMonitor
from src.monitoring.domain import MonitorConfig
from src.presence.domain import Coordinates
from tests.helpers import NOW


def minutes(n):
    return timedelta(minutes=n)


# ----- online / offline -----

async def test_presence_follows_ping_recency(presence_tracker):
    await presence_tracker.record_ping("rep-1", Coordinates(53.8, -1.55), now=NOW)

    assert await presence_tracker.is_online("rep-1", NOW + minutes(5))
    assert await presence_tracker.is_online("rep-1", NOW + minutes(30))
    assert not await presence_tracker.is_online("rep-1", NOW + minutes(31))


async def test_never_pinged_is_offline(presence_tracker):
    assert not await presence_tracker.is_online("rep-unknown", NOW)
    snapshot = await presence_tracker.snapshot("rep-unknown", NOW)
    assert snapshot.last_seen is None
    assert snapshot.attendance_status is None


async def test_online_window_follows_config(presence_tracker, config_provider):
    await presence_tracker.record_ping("rep-1", now=NOW)
    config_provider.config = MonitorConfig(online_window_minutes=10)

    assert not await presence_tracker.is_online("rep-1", NOW + minutes(11))


async def test_out_of_order_ping_is_ignored(presence_tracker):
    await presence_tracker.record_ping("rep-1", Coordinates(1.0, 1.0), now=NOW)
    record = await presence_tracker.record_ping("rep-1", Coordinates(2.0, 2.0), now=NOW - minutes(10))

    assert record.last_seen == NOW
    snapshot = await presence_tracker.snapshot("rep-1", NOW)
    assert snapshot.coordinates == Coordinates(1.0, 1.0)


async def test_newer_ping_replaces_location(presence_tracker):
    await presence_tracker.record_ping("rep-1", Coordinates(1.0, 1.0), now=NOW)
    await presence_tracker.record_ping("rep-1", Coordinates(2.0, 2.0), now=NOW + minutes(1))

    snapshot = await presence_tracker.snapshot("rep-1", NOW + minutes(1))
    assert snapshot.last_seen == NOW + minutes(1)
    assert snapshot.coordinates == Coordinates(2.0, 2.0)


def test_coordinates_are_validated():
    with pytest.raises(ValidationException):
        Coordinates(91.0, 0.0)
    with pytest.raises(ValidationException):
        Coordinates(0.0, -181.0)


async def test_ping_requires_representative(presence_tracker):
    with pytest.raises(ValidationException):
        await presence_tracker.record_ping("", now=NOW)


# ----- attendance -----

async def test_attendance_day(presence_tracker):
    record = await presence_tracker.set_attendance("rep-1", "check_in", NOW)
    assert record.status == AttendanceStatus.CHECKED_IN

    await presence_tracker.set_attendance("rep-1", "start_break", NOW + minutes(120))
    await presence_tracker.set_attendance("rep-1", "end_break", NOW + minutes(150))
    record = await presence_tracker.set_attendance("rep-1", "check_out", NOW + minutes(480))

    assert record.status == AttendanceStatus.CHECKED_OUT
    assert record.total_hours == 8.0


async def test_attendance_rejects_illegal_transition(presence_tracker):
    with pytest.raises(DomainException):
        await presence_tracker.set_attendance("rep-1", "check_out", NOW)

    await presence_tracker.set_attendance("rep-1", "check_in", NOW)
    with pytest.raises(DomainException):
        await presence_tracker.set_attendance("rep-1", "check_in", NOW)


async def test_attendance_rejects_unknown_action(presence_tracker):
    with pytest.raises(ValidationException):
        await presence_tracker.set_attendance("rep-1", "teleport", NOW)


async def test_attendance_does_not_affect_presence(presence_tracker):
    await presence_tracker.set_attendance("rep-1", "check_in", NOW)

    snapshot = await presence_tracker.snapshot("rep-1", NOW)
    assert snapshot.attendance_status == AttendanceStatus.CHECKED_IN
    assert not snapshot.is_online


async def test_list_snapshots_joins_attendance(presence_tracker):
    await presence_tracker.record_ping("rep-1", now=NOW)
    await presence_tracker.record_ping("rep-2", now=NOW - minutes(45))
    await presence_tracker.set_attendance("rep-2", "check_in", NOW)

    snapshots = {s.representative_id: s for s in await presence_tracker.list_snapshots(NOW)}
    assert snapshots["rep-1"].is_online
    assert not snapshots["rep-2"].is_online
    assert snapshots["rep-2"].attendance_status == AttendanceStatus.CHECKED_IN


# ----- presence sweep -----

async def test_going_offline_raises_presence_alert(monitor, presence_tracker, alert_repo):
    await presence_tracker.record_ping("rep-1", now=NOW)
    await monitor.sweep_presence(now=NOW + minutes(5))

    report = await monitor.sweep_presence(now=NOW + minutes(31))

    assert report.alerts_created == 1
    alerts = await alert_repo.list_open()
    assert [a.alert_type for a in alerts] == [AlertType.PRESENCE_CHANGE]
    assert alerts[0].representative_id == "rep-1"
    assert alerts[0].visit_id is None
    assert "went offline" in alerts[0].message


async def test_staying_offline_does_not_repeat_the_alert(monitor, presence_tracker, alert_repo):
    await presence_tracker.record_ping("rep-1", now=NOW)
    await monitor.sweep_presence(now=NOW)
    await monitor.sweep_presence(now=NOW + minutes(31))

    report = await monitor.sweep_presence(now=NOW + minutes(40))

    assert report.alerts_created == 0
    assert len(await alert_repo.list_open()) == 1


async def test_first_sweep_of_offline_representative_is_not_an_edge(monitor, presence_tracker, alert_repo):
    await presence_tracker.record_ping("rep-1", now=NOW - minutes(120))

    report = await monitor.sweep_presence(now=NOW)

    assert report.evaluated == 1
    assert report.alerts_created == 0
    assert await alert_repo.list_open() == []


async def test_coming_back_online_resolves_presence_alert(monitor, presence_tracker, alert_repo):
    await presence_tracker.record_ping("rep-1", now=NOW)
    await monitor.sweep_presence(now=NOW)
    await monitor.sweep_presence(now=NOW + minutes(31))
    alert = (await alert_repo.list_open())[0]

    await presence_tracker.record_ping("rep-1", now=NOW + minutes(35))
    report = await monitor.sweep_presence(now=NOW + minutes(36))

    assert report.alerts_resolved == 1
    stored = await alert_repo.get(alert.id)
    assert stored.is_resolved
    assert stored.resolved_by == "system"


async def test_offline_alert_escalates(monitor, presence_tracker, alert_repo):
    await presence_tracker.record_ping("rep-1", now=NOW)
    await monitor.sweep_presence(now=NOW)
    await monitor.sweep_presence(now=NOW + minutes(31))

    report = await monitor.sweep_presence(now=NOW + minutes(61))

    assert report.alerts_escalated == 1
    assert (await alert_repo.list_open())[0].escalation_count == 1


async def test_presence_alerts_can_be_disabled(monitor, presence_tracker, alert_repo, config_provider):
    config_provider.config = MonitorConfig(presence_alerts_enabled=False)
    await presence_tracker.record_ping("rep-1", now=NOW)
    await monitor.sweep_presence(now=NOW)

    report = await monitor.sweep_presence(now=NOW + minutes(31))

    assert report.alerts_created == 0
    assert await alert_repo.list_open() == []


async def test_presence_sweep_without_tracker_is_skipped(visit_repo, alert_engine, config_provider):
    monitor = SLAMonitor(visit_repo, alert_engine, config_provider)
    assert (await monitor.sweep_presence(now=NOW)).skipped
