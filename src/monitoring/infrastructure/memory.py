"""
In-Memory Monitoring Repositories
=================================

Process-local implementations of the monitoring repositories, selected
with ``STORAGE_BACKEND=memory``. Used for development and tests.

Entities are copied on the way in and out so callers never share mutable
state with the store.
"""

import asyncio
from copy import deepcopy
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from src.config import AlertSeverity, AlertType, VisitStatus
from src.core import DuplicateAlertException, ResourceNotFoundException
from src.monitoring.application.services import AlertStats, IAlertRepository, IVisitRepository
from src.monitoring.domain import Alert, Visit


class InMemoryVisitRepository(IVisitRepository):
    """Dict-backed visit registry."""

    def __init__(self):
        self._visits: Dict[str, Visit] = {}
        self._lock = asyncio.Lock()

    async def list_active(self) -> List[Visit]:
        async with self._lock:
            active = [v for v in self._visits.values() if not v.status.is_terminal]
        return [deepcopy(v) for v in sorted(active, key=lambda v: v.scheduled_start)]

    async def get(self, visit_id: str) -> Optional[Visit]:
        async with self._lock:
            visit = self._visits.get(visit_id)
            return deepcopy(visit) if visit else None

    async def update_flags(
        self,
        visit_id: str,
        status: VisitStatus,
        is_late: bool,
        exceeds_time_limit: bool,
        expected_status: Optional[VisitStatus] = None
    ) -> bool:
        async with self._lock:
            visit = self._visits.get(visit_id)
            if visit is None:
                return False
            if expected_status is not None and visit.status != expected_status:
                return False
            visit.status = status
            visit.is_late = is_late
            visit.exceeds_time_limit = exceeds_time_limit
            visit.updated_at = datetime.now(timezone.utc)
            return True

    async def add(self, visit: Visit) -> Visit:
        async with self._lock:
            self._visits[visit.id] = deepcopy(visit)
        return visit

    async def save(self, visit: Visit) -> Visit:
        async with self._lock:
            if visit.id not in self._visits:
                raise ResourceNotFoundException("Visit", visit.id)
            self._visits[visit.id] = deepcopy(visit)
        return visit

    async def list(
        self,
        status: Optional[VisitStatus] = None,
        representative_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Visit]:
        async with self._lock:
            visits = [
                v for v in self._visits.values()
                if (status is None or v.status == status)
                and (not representative_id or v.representative_id == representative_id)
            ]
        visits.sort(key=lambda v: v.scheduled_start, reverse=True)
        return [deepcopy(v) for v in visits[offset:offset + limit]]


class InMemoryAlertRepository(IAlertRepository):
    """
    Alert arena plus an index of open alerts by dedup key.

    The index plays the role of the partial unique index in the SQL store.
    """

    def __init__(self):
        self._alerts: Dict[str, Alert] = {}
        self._open: Dict[Tuple[str, AlertType], str] = {}
        self._lock = asyncio.Lock()

    async def find_open(self, scope_key: str, alert_type: AlertType) -> Optional[Alert]:
        async with self._lock:
            alert_id = self._open.get((scope_key, alert_type))
            return deepcopy(self._alerts[alert_id]) if alert_id else None

    async def insert(self, alert: Alert) -> Alert:
        key = (alert.scope_key, alert.alert_type)
        async with self._lock:
            if not alert.is_resolved and key in self._open:
                raise DuplicateAlertException(alert.scope_key, alert.alert_type.value)
            alert.id = str(uuid4())
            self._alerts[alert.id] = deepcopy(alert)
            if not alert.is_resolved:
                self._open[key] = alert.id
        return alert

    async def update_escalation(self, alert: Alert, expected_count: int) -> bool:
        async with self._lock:
            stored = self._require(alert.id)
            if stored.is_resolved or stored.escalation_count != expected_count:
                return False
            stored.severity = alert.severity
            stored.escalation_level = alert.escalation_level
            stored.escalation_count = alert.escalation_count
            stored.last_escalated_at = alert.last_escalated_at
            stored.updated_at = alert.updated_at
            return True

    async def update_read_state(self, alert: Alert) -> bool:
        async with self._lock:
            stored = self._require(alert.id)
            if stored.is_read == alert.is_read:
                return False
            stored.is_read = alert.is_read
            stored.read_at = alert.read_at
            stored.updated_at = alert.updated_at
            return True

    async def update_resolution(self, alert: Alert) -> bool:
        async with self._lock:
            stored = self._require(alert.id)
            if stored.is_resolved:
                return False
            stored.is_resolved = alert.is_resolved
            stored.resolved_at = alert.resolved_at
            stored.resolved_by = alert.resolved_by
            stored.updated_at = alert.updated_at
            key = (stored.scope_key, stored.alert_type)
            if stored.is_resolved and self._open.get(key) == stored.id:
                del self._open[key]
            return True

    async def update_acknowledgement(self, alert: Alert) -> bool:
        async with self._lock:
            stored = self._require(alert.id)
            if stored.acknowledged_at is not None:
                return False
            stored.acknowledged_by = alert.acknowledged_by
            stored.acknowledged_at = alert.acknowledged_at
            stored.updated_at = alert.updated_at
            return True

    async def get(self, alert_id: str) -> Optional[Alert]:
        async with self._lock:
            alert = self._alerts.get(alert_id)
            return deepcopy(alert) if alert else None

    async def list_unread(
        self,
        limit: int = 100,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None
    ) -> List[Alert]:
        return await self._newest_first(lambda a: not a.is_read, limit, severity, alert_type)

    async def list_open(
        self,
        limit: int = 100,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None
    ) -> List[Alert]:
        return await self._newest_first(lambda a: not a.is_resolved, limit, severity, alert_type)

    async def count_by_state(self) -> AlertStats:
        async with self._lock:
            alerts = list(self._alerts.values())

        stats = AlertStats(total=len(alerts))
        for alert in alerts:
            if not alert.is_read:
                stats.unread += 1
            if alert.is_resolved:
                stats.resolved += 1
            else:
                stats.open += 1
                severity = alert.severity.value
                stats.open_by_severity[severity] = stats.open_by_severity.get(severity, 0) + 1
        return stats

    async def _newest_first(
        self,
        predicate,
        limit: int,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None
    ) -> List[Alert]:
        async with self._lock:
            matching = [
                a for a in self._alerts.values()
                if predicate(a)
                and (severity is None or a.severity == severity)
                and (alert_type is None or a.alert_type == alert_type)
            ]
        matching.sort(key=lambda a: a.created_at, reverse=True)
        return [deepcopy(a) for a in matching[:limit]]

    def _require(self, alert_id: Optional[str]) -> Alert:
        alert = self._alerts.get(alert_id) if alert_id else None
        if alert is None:
            raise ResourceNotFoundException("Alert", alert_id)
        return alert
