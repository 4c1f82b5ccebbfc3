"""
Shared fixtures: in-memory repositories, a fixed clock and a recording
dispatcher, so every tick can be driven with an explicit ``now``.
"""

import pytest

from src.monitoring.application import AlertEngine, SLAMonitor, VisitService
from src.monitoring.infrastructure import InMemoryAlertRepository, InMemoryVisitRepository
from src.presence.application import PresenceTracker
from src.presence.infrastructure import InMemoryAttendanceRepository, InMemoryPresenceRepository
from tests.helpers import RecordingDispatcher, StaticConfigProvider


@pytest.fixture
def config_provider():
    return StaticConfigProvider()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def visit_repo():
    return InMemoryVisitRepository()


@pytest.fixture
def alert_repo():
    return InMemoryAlertRepository()


@pytest.fixture
def presence_repo():
    return InMemoryPresenceRepository()


@pytest.fixture
def attendance_repo():
    return InMemoryAttendanceRepository()


@pytest.fixture
def alert_engine(alert_repo, config_provider, dispatcher):
    return AlertEngine(alert_repo, config_provider, dispatcher=dispatcher, call_timeout=1.0, dispatch_timeout=0.5)


@pytest.fixture
def visit_service(visit_repo, config_provider):
    return VisitService(visit_repo, config_provider)


@pytest.fixture
def presence_tracker(presence_repo, attendance_repo, config_provider):
    return PresenceTracker(
        presence_repo,
        attendance_repo,
        online_window=lambda: config_provider.get_config().online_window
    )


@pytest.fixture
def monitor(visit_repo, alert_engine, config_provider, presence_tracker):
    return SLAMonitor(visit_repo, alert_engine, config_provider, presence_tracker=presence_tracker, call_timeout=1.0)
