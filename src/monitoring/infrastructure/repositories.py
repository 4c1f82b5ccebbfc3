"""
Monitoring Infrastructure Repositories
======================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. Each call runs in its own short unit of work.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import (
    AlertSeverity, AlertType, EscalationLevel, Priority,
    TERMINAL_VISIT_STATUSES, VisitStatus, VisitType,
)
from src.core import DuplicateAlertException, ResourceNotFoundException
from src.infrastructure.database import as_utc, unit_of_work
from src.monitoring.application.services import AlertStats, IAlertRepository, IVisitRepository
from src.monitoring.domain import Alert, Visit
from src.monitoring.infrastructure.models import AlertModel, VisitModel


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(value)
    except (TypeError, ValueError):
        return None


class SQLAlchemyVisitRepository(IVisitRepository):
    """
    SQLAlchemy implementation of the visit registry.

    ``update_flags`` is a single conditional UPDATE so it can never clobber
    a check-in or cancellation committed after the sweep read the visit.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def list_active(self) -> List[Visit]:
        terminal = [status.value for status in TERMINAL_VISIT_STATUSES]
        async with unit_of_work(self._session_maker, "visit.list_active") as session:
            stmt = (
                select(VisitModel)
                .where(VisitModel.status.not_in(terminal))
                .order_by(VisitModel.scheduled_start.asc())
            )
            result = await session.execute(stmt)
            return [self._to_domain(model) for model in result.scalars().all()]

    async def get(self, visit_id: str) -> Optional[Visit]:
        async with unit_of_work(self._session_maker, "visit.get") as session:
            model = await session.get(VisitModel, visit_id)
            return self._to_domain(model) if model else None

    async def update_flags(
        self,
        visit_id: str,
        status: VisitStatus,
        is_late: bool,
        exceeds_time_limit: bool,
        expected_status: Optional[VisitStatus] = None
    ) -> bool:
        stmt = update(VisitModel).where(VisitModel.id == visit_id)
        if expected_status is not None:
            stmt = stmt.where(VisitModel.status == expected_status.value)
        stmt = stmt.values(
            status=status.value,
            is_late=is_late,
            exceeds_time_limit=exceeds_time_limit,
            updated_at=datetime.now(timezone.utc)
        )

        async with unit_of_work(self._session_maker, "visit.update_flags") as session:
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def add(self, visit: Visit) -> Visit:
        async with unit_of_work(self._session_maker, "visit.add") as session:
            session.add(self._to_model(visit, VisitModel(id=visit.id)))
        return visit

    async def save(self, visit: Visit) -> Visit:
        async with unit_of_work(self._session_maker, "visit.save") as session:
            model = await session.get(VisitModel, visit.id)
            if model is None:
                raise ResourceNotFoundException("Visit", visit.id)
            self._to_model(visit, model)
        return visit

    async def list(
        self,
        status: Optional[VisitStatus] = None,
        representative_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Visit]:
        stmt = select(VisitModel)

        if status is not None:
            stmt = stmt.where(VisitModel.status == status.value)
        if representative_id:
            stmt = stmt.where(VisitModel.representative_id == representative_id)

        stmt = stmt.order_by(VisitModel.scheduled_start.desc()).limit(limit).offset(offset)

        async with unit_of_work(self._session_maker, "visit.list") as session:
            result = await session.execute(stmt)
            return [self._to_domain(model) for model in result.scalars().all()]

    @staticmethod
    def _to_model(visit: Visit, model: VisitModel) -> VisitModel:
        model.representative_id = visit.representative_id
        model.representative_name = visit.representative_name
        model.customer_id = visit.customer_id
        model.customer_name = visit.customer_name
        model.customer_address = visit.customer_address
        model.visit_type = visit.visit_type.value
        model.priority = visit.priority.value
        model.status = visit.status.value
        model.scheduled_start = visit.scheduled_start
        model.scheduled_end = visit.scheduled_end
        model.allowed_duration_minutes = visit.allowed_duration_minutes
        model.actual_start = visit.actual_start
        model.actual_end = visit.actual_end
        model.is_late = visit.is_late
        model.exceeds_time_limit = visit.exceeds_time_limit
        model.notes = visit.notes
        model.created_at = visit.created_at
        model.updated_at = visit.updated_at
        return model

    @staticmethod
    def _to_domain(model: VisitModel) -> Visit:
        return Visit(
            id=model.id,
            representative_id=model.representative_id,
            representative_name=model.representative_name,
            customer_id=model.customer_id,
            customer_name=model.customer_name,
            customer_address=model.customer_address,
            visit_type=VisitType(model.visit_type),
            priority=Priority(model.priority),
            status=VisitStatus(model.status),
            scheduled_start=as_utc(model.scheduled_start),
            scheduled_end=as_utc(model.scheduled_end),
            allowed_duration_minutes=model.allowed_duration_minutes,
            actual_start=as_utc(model.actual_start),
            actual_end=as_utc(model.actual_end),
            is_late=model.is_late,
            exceeds_time_limit=model.exceeds_time_limit,
            notes=model.notes,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )


class SQLAlchemyAlertRepository(IAlertRepository):
    """
    SQLAlchemy implementation of the alert store.

    Dedup is enforced by the partial unique index on open alerts; a losing
    concurrent insert surfaces as ``DuplicateAlertException``.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def find_open(self, scope_key: str, alert_type: AlertType) -> Optional[Alert]:
        stmt = select(AlertModel).where(
            AlertModel.scope_key == scope_key,
            AlertModel.alert_type == alert_type.value,
            AlertModel.is_resolved.is_(False),
        )
        async with unit_of_work(self._session_maker, "alert.find_open") as session:
            result = await session.execute(stmt)
            model = result.scalars().first()
            return self._to_domain(model) if model else None

    async def insert(self, alert: Alert) -> Alert:
        model = AlertModel(id=uuid4(), scope_key=alert.scope_key)
        self._to_model(alert, model)

        try:
            async with unit_of_work(self._session_maker, "alert.insert") as session:
                session.add(model)
        except IntegrityError as e:
            raise DuplicateAlertException(alert.scope_key, alert.alert_type.value) from e

        # Update alert with generated ID
        alert.id = str(model.id)
        return alert

    async def update_escalation(self, alert: Alert, expected_count: int) -> bool:
        return await self._conditional_update(
            alert,
            "alert.update_escalation",
            [AlertModel.is_resolved.is_(False), AlertModel.escalation_count == expected_count],
            severity=alert.severity.value,
            escalation_level=alert.escalation_level.value,
            escalation_count=alert.escalation_count,
            last_escalated_at=alert.last_escalated_at,
        )

    async def update_read_state(self, alert: Alert) -> bool:
        return await self._conditional_update(
            alert,
            "alert.update_read_state",
            [AlertModel.is_read.is_(not alert.is_read)],
            is_read=alert.is_read,
            read_at=alert.read_at,
        )

    async def update_resolution(self, alert: Alert) -> bool:
        return await self._conditional_update(
            alert,
            "alert.update_resolution",
            [AlertModel.is_resolved.is_(False)],
            is_resolved=alert.is_resolved,
            resolved_at=alert.resolved_at,
            resolved_by=alert.resolved_by,
        )

    async def update_acknowledgement(self, alert: Alert) -> bool:
        return await self._conditional_update(
            alert,
            "alert.update_acknowledgement",
            [AlertModel.acknowledged_at.is_(None)],
            acknowledged_by=alert.acknowledged_by,
            acknowledged_at=alert.acknowledged_at,
        )

    async def _conditional_update(self, alert: Alert, operation: str, conditions, **values) -> bool:
        """
        Single UPDATE of the given columns guarded by ``conditions``.

        Returns False when the guard no longer holds.

        Raises:
            ResourceNotFoundException: no alert with that ID
            DuplicateAlertException: the write would break open-alert uniqueness
        """
        alert_uuid = _parse_uuid(alert.id)
        if alert_uuid is None:
            raise ResourceNotFoundException("Alert", alert.id)

        stmt = (
            update(AlertModel)
            .where(AlertModel.id == alert_uuid, *conditions)
            .values(updated_at=alert.updated_at, **values)
        )
        try:
            async with unit_of_work(self._session_maker, operation) as session:
                result = await session.execute(stmt)
                if result.rowcount > 0:
                    return True
                exists = await session.scalar(select(AlertModel.id).where(AlertModel.id == alert_uuid))
        except IntegrityError as e:
            raise DuplicateAlertException(alert.scope_key, alert.alert_type.value) from e

        if exists is None:
            raise ResourceNotFoundException("Alert", alert.id)
        return False

    async def get(self, alert_id: str) -> Optional[Alert]:
        alert_uuid = _parse_uuid(alert_id)
        if alert_uuid is None:
            return None
        async with unit_of_work(self._session_maker, "alert.get") as session:
            model = await session.get(AlertModel, alert_uuid)
            return self._to_domain(model) if model else None

    async def list_unread(
        self,
        limit: int = 100,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None
    ) -> List[Alert]:
        stmt = self._filtered(AlertModel.is_read.is_(False), severity, alert_type).limit(limit)
        async with unit_of_work(self._session_maker, "alert.list_unread") as session:
            result = await session.execute(stmt)
            return [self._to_domain(model) for model in result.scalars().all()]

    async def list_open(
        self,
        limit: int = 100,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None
    ) -> List[Alert]:
        stmt = self._filtered(AlertModel.is_resolved.is_(False), severity, alert_type).limit(limit)
        async with unit_of_work(self._session_maker, "alert.list_open") as session:
            result = await session.execute(stmt)
            return [self._to_domain(model) for model in result.scalars().all()]

    @staticmethod
    def _filtered(condition, severity: Optional[AlertSeverity], alert_type: Optional[AlertType]):
        stmt = select(AlertModel).where(condition)
        if severity is not None:
            stmt = stmt.where(AlertModel.severity == severity.value)
        if alert_type is not None:
            stmt = stmt.where(AlertModel.alert_type == alert_type.value)
        return stmt.order_by(AlertModel.created_at.desc())

    async def count_by_state(self) -> AlertStats:
        async with unit_of_work(self._session_maker, "alert.count_by_state") as session:
            total = await session.scalar(select(func.count()).select_from(AlertModel))
            open_count = await session.scalar(
                select(func.count()).select_from(AlertModel).where(AlertModel.is_resolved.is_(False))
            )
            unread = await session.scalar(
                select(func.count()).select_from(AlertModel).where(AlertModel.is_read.is_(False))
            )
            by_severity = await session.execute(
                select(AlertModel.severity, func.count())
                .where(AlertModel.is_resolved.is_(False))
                .group_by(AlertModel.severity)
            )

        return AlertStats(
            total=total or 0,
            open=open_count or 0,
            unread=unread or 0,
            resolved=(total or 0) - (open_count or 0),
            open_by_severity={severity: count for severity, count in by_severity.all()},
        )

    @staticmethod
    def _to_model(alert: Alert, model: AlertModel) -> AlertModel:
        model.visit_id = alert.visit_id
        model.representative_id = alert.representative_id
        model.alert_type = alert.alert_type.value
        model.severity = alert.severity.value
        model.message = alert.message
        model.is_read = alert.is_read
        model.read_at = alert.read_at
        model.is_resolved = alert.is_resolved
        model.resolved_at = alert.resolved_at
        model.resolved_by = alert.resolved_by
        model.acknowledged_by = alert.acknowledged_by
        model.acknowledged_at = alert.acknowledged_at
        model.escalation_level = alert.escalation_level.value
        model.escalation_count = alert.escalation_count
        model.last_escalated_at = alert.last_escalated_at
        model.extra = dict(alert.metadata)
        model.created_at = alert.created_at
        model.updated_at = alert.updated_at
        return model

    @staticmethod
    def _to_domain(model: AlertModel) -> Alert:
        return Alert(
            id=str(model.id),
            alert_type=AlertType(model.alert_type),
            severity=AlertSeverity(model.severity),
            message=model.message,
            visit_id=model.visit_id,
            representative_id=model.representative_id,
            is_read=model.is_read,
            read_at=as_utc(model.read_at),
            is_resolved=model.is_resolved,
            resolved_at=as_utc(model.resolved_at),
            resolved_by=model.resolved_by,
            acknowledged_by=model.acknowledged_by,
            acknowledged_at=as_utc(model.acknowledged_at),
            escalation_level=EscalationLevel(model.escalation_level),
            escalation_count=model.escalation_count,
            last_escalated_at=as_utc(model.last_escalated_at),
            metadata=dict(model.extra or {}),
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
