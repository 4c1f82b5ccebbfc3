"""Test doubles and factories shared across test modules."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from src.config import Priority, VisitStatus, VisitType
from src.core import DispatchException
from src.monitoring.application import IMonitorConfigProvider, INotificationDispatcher
from src.monitoring.domain import Alert, MonitorConfig, Visit

NOW = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


class StaticConfigProvider(IMonitorConfigProvider):
    def __init__(self, config: Optional[MonitorConfig] = None):
        self.config = config or MonitorConfig()

    def get_config(self) -> MonitorConfig:
        return self.config


class RecordingDispatcher(INotificationDispatcher):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Alert] = []

    async def send(self, alert: Alert) -> None:
        if self.fail:
            raise DispatchException("webhook unreachable", {"alert_id": alert.id})
        self.sent.append(alert)


def make_visit(visit_id: str = "visit-1", **overrides) -> Visit:
    fields = dict(
        id=visit_id,
        representative_id="rep-1",
        representative_name="Dana Whitfield",
        customer_name="Northwind Traders",
        customer_address="12 Harbour Road",
        visit_type=VisitType.INSPECTION,
        priority=Priority.HIGH,
        scheduled_start=NOW,
        scheduled_end=NOW + timedelta(hours=1),
        allowed_duration_minutes=60,
        status=VisitStatus.SCHEDULED,
    )
    fields.update(overrides)
    return Visit(**fields)
