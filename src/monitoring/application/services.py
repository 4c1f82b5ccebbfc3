"""
Monitoring Application Services
===============================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations

Services:
- AlertEngine: alert lifecycle (dedup, escalation, read, acknowledge, resolve) and dispatch
- VisitService: explicit visit transitions (check-in, check-out, cancel)
- SLAMonitor: periodic sweeps over active visits and representative presence
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional, Tuple, TypeVar
from uuid import uuid4

from src.config import AlertSeverity, AlertType, VisitStatus
from src.core import (
    ApplicationException, DispatchException, DomainException, DuplicateAlertException,
    RepositoryException, ResourceNotFoundException,
)
from src.monitoring.domain import (
    Alert, AlertScope, EscalationPolicy, MonitorConfig,
    Visit, VisitEvaluation, VisitStateMachine,
)
from src.presence.application import PresenceTracker
from src.presence.domain import PresenceSnapshot
from src.shared.infrastructure.logging import get_context_logger, get_logger, log_latency

logger = get_logger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IVisitRepository(ABC):
    """Interface for visit data access (the visit registry)."""

    @abstractmethod
    async def list_active(self) -> List[Visit]:
        """List visits that are not in a terminal status."""

    @abstractmethod
    async def get(self, visit_id: str) -> Optional[Visit]:
        """Get visit by ID."""

    @abstractmethod
    async def update_flags(
        self,
        visit_id: str,
        status: VisitStatus,
        is_late: bool,
        exceeds_time_limit: bool,
        expected_status: Optional[VisitStatus] = None
    ) -> bool:
        """
        Write derived fields only.

        When ``expected_status`` is given the write applies only if the
        stored status still equals it. Returns whether a row was updated.
        """

    @abstractmethod
    async def add(self, visit: Visit) -> Visit:
        """Create new visit."""

    @abstractmethod
    async def save(self, visit: Visit) -> Visit:
        """Persist an explicit transition (check-in, check-out, cancel)."""

    @abstractmethod
    async def list(
        self,
        status: Optional[VisitStatus] = None,
        representative_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Visit]:
        """List visits with filters."""


@dataclass
class AlertStats:
    """Alert counts for dashboards."""
    total: int = 0
    open: int = 0
    unread: int = 0
    resolved: int = 0
    open_by_severity: Dict[str, int] = field(default_factory=dict)


class IAlertRepository(ABC):
    """Interface for alert data access."""

    @abstractmethod
    async def find_open(self, scope_key: str, alert_type: AlertType) -> Optional[Alert]:
        """Get the unresolved alert for a dedup key, if any."""

    @abstractmethod
    async def insert(self, alert: Alert) -> Alert:
        """
        Insert a new alert and assign its ID.

        Raises:
            DuplicateAlertException: an open alert already holds the dedup key
        """

    # Each write below touches only its own columns and applies only when
    # the stored state still allows the transition.

    @abstractmethod
    async def update_escalation(self, alert: Alert, expected_count: int) -> bool:
        """
        Write severity and escalation fields.

        Applies only while the stored alert is unresolved and its
        ``escalation_count`` still equals ``expected_count``.
        """

    @abstractmethod
    async def update_read_state(self, alert: Alert) -> bool:
        """Write ``is_read`` / ``read_at`` if the stored flag differs."""

    @abstractmethod
    async def update_resolution(self, alert: Alert) -> bool:
        """Write the resolution fields if the stored alert is still open."""

    @abstractmethod
    async def update_acknowledgement(self, alert: Alert) -> bool:
        """Write the acknowledgement fields if nobody acknowledged yet."""

    @abstractmethod
    async def get(self, alert_id: str) -> Optional[Alert]:
        """Get alert by ID."""

    @abstractmethod
    async def list_unread(
        self,
        limit: int = 100,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None
    ) -> List[Alert]:
        """Alerts not yet read, newest first."""

    @abstractmethod
    async def list_open(
        self,
        limit: int = 100,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None
    ) -> List[Alert]:
        """Unresolved alerts, newest first."""

    @abstractmethod
    async def count_by_state(self) -> AlertStats:
        """Aggregate counts for dashboards."""


class INotificationDispatcher(ABC):
    """Delivers alerts onward (messaging, push)."""

    @abstractmethod
    async def send(self, alert: Alert) -> None:
        """
        Deliver an alert.

        Raises:
            DispatchException: delivery failed
        """

    async def close(self) -> None:
        """Release transport resources. Nothing to release by default."""
        return None


class IMonitorConfigProvider(ABC):
    """Interface for monitor policy access."""

    @abstractmethod
    def get_config(self) -> MonitorConfig:
        """Get current monitor configuration."""


# ========== Application Services ==========

class AlertEngine:
    """
    Owns the alert lifecycle.

    Guarantees at most one open alert per ``(scope, alert_type)``: the
    repository's uniqueness constraint is the final arbiter, the lookup
    before insert only avoids needless writes. Dispatch is best effort and
    never rolls back an alert write.
    """

    def __init__(
        self,
        alert_repository: IAlertRepository,
        config_provider: IMonitorConfigProvider,
        dispatcher: Optional[INotificationDispatcher] = None,
        call_timeout: float = 5.0,
        dispatch_timeout: float = 10.0
    ):
        self._alert_repo = alert_repository
        self._config_provider = config_provider
        self._dispatcher = dispatcher
        self._call_timeout = call_timeout
        self._dispatch_timeout = dispatch_timeout

    async def create(
        self,
        alert_type: AlertType,
        message: str,
        visit_id: Optional[str] = None,
        representative_id: Optional[str] = None,
        severity: Optional[AlertSeverity] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> Alert:
        """Create an alert, or return the open one for the same scope and type."""
        alert, _ = await self.create_or_get(
            alert_type, message,
            visit_id=visit_id, representative_id=representative_id,
            severity=severity, metadata=metadata, now=now
        )
        return alert

    async def create_or_get(
        self,
        alert_type: AlertType,
        message: str,
        visit_id: Optional[str] = None,
        representative_id: Optional[str] = None,
        severity: Optional[AlertSeverity] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> Tuple[Alert, bool]:
        """
        Idempotent create.

        Returns:
            Tuple of (alert, created) where ``created`` is False when an
            open alert already existed for the dedup key
        """
        scope = AlertScope(visit_id=visit_id, representative_id=representative_id)

        existing = await self._bounded(self._alert_repo.find_open(scope.key, alert_type))
        if existing is not None:
            return existing, False

        now = now or _utcnow()
        config = self._config_provider.get_config()
        alert = Alert(
            id=None,
            alert_type=alert_type,
            severity=severity or config.severity_for(alert_type),
            message=message,
            visit_id=visit_id,
            representative_id=representative_id,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now
        )

        try:
            alert = await self._bounded(self._alert_repo.insert(alert))
        except DuplicateAlertException:
            # Lost a race with a concurrent sweep; the stored alert wins
            winner = await self._bounded(self._alert_repo.find_open(scope.key, alert_type))
            if winner is None:
                raise
            logger.info(
                "Concurrent alert insert collapsed onto existing alert",
                extra={"alert_id": winner.id, "scope": scope.key, "alert_type": alert_type.value}
            )
            return winner, False

        logger.info(
            "Alert created",
            extra={
                "alert_id": alert.id,
                "alert_type": alert.alert_type.value,
                "severity": alert.severity.value,
                "scope": scope.key
            }
        )
        await self._notify(alert)
        return alert, True

    async def escalate(self, alert_id: str, now: Optional[datetime] = None) -> Alert:
        """
        Manually advance an open alert one escalation level.

        Raises:
            DomainException: the alert is already resolved
        """
        alert = await self.get(alert_id)
        if alert.is_resolved:
            raise DomainException("Cannot escalate a resolved alert", {"alert_id": alert_id})
        if await self._apply_escalation(alert, now or _utcnow()):
            return alert
        return await self.get(alert_id)

    async def escalate_if_due(self, alert: Alert, now: Optional[datetime] = None) -> bool:
        """
        Escalate once if the alert's age has passed its next threshold.

        ``alert`` may be a copy read earlier in the sweep. Nothing is written
        when the stored alert was resolved or escalated in the meantime.
        """
        if alert.is_resolved:
            return False
        now = now or _utcnow()
        thresholds = self._config_provider.get_config().escalation_thresholds_minutes
        if not EscalationPolicy.is_due(alert, now, thresholds):
            return False
        return await self._apply_escalation(alert, now)

    async def mark_read(self, alert_id: str, now: Optional[datetime] = None) -> Alert:
        """Mark alert as read; reading twice is a no-op."""
        alert = await self.get(alert_id)
        if alert.mark_read(now or _utcnow()):
            if not await self._bounded(self._alert_repo.update_read_state(alert)):
                return await self.get(alert_id)
        return alert

    async def mark_unread(self, alert_id: str, now: Optional[datetime] = None) -> Alert:
        alert = await self.get(alert_id)
        if alert.mark_unread(now or _utcnow()):
            if not await self._bounded(self._alert_repo.update_read_state(alert)):
                return await self.get(alert_id)
        return alert

    async def acknowledge(self, alert_id: str, acknowledged_by: str, now: Optional[datetime] = None) -> Alert:
        """Record who owns the alert; the first acknowledgement is kept."""
        alert = await self.get(alert_id)
        if alert.acknowledge(acknowledged_by, now or _utcnow()):
            if not await self._bounded(self._alert_repo.update_acknowledgement(alert)):
                return await self.get(alert_id)
            logger.info(
                "Alert acknowledged",
                extra={"alert_id": alert.id, "acknowledged_by": acknowledged_by}
            )
        return alert

    async def resolve(self, alert_id: str, resolved_by: str, now: Optional[datetime] = None) -> Alert:
        """Resolve alert; resolving twice keeps the original resolution."""
        alert = await self.get(alert_id)
        if alert.resolve(resolved_by, now or _utcnow()):
            if not await self._bounded(self._alert_repo.update_resolution(alert)):
                # Someone else resolved it first; theirs is the resolution
                return await self.get(alert_id)
            logger.info(
                "Alert resolved",
                extra={"alert_id": alert.id, "resolved_by": resolved_by}
            )
        return alert

    async def resolve_open(
        self,
        scope: AlertScope,
        alert_type: AlertType,
        resolved_by: str,
        now: Optional[datetime] = None
    ) -> Optional[Alert]:
        """Resolve the open alert for a dedup key, if there is one."""
        alert = await self.find_open(scope, alert_type)
        if alert is None:
            return None
        return await self.resolve(alert.id, resolved_by, now)

    async def get(self, alert_id: str) -> Alert:
        alert = await self._bounded(self._alert_repo.get(alert_id))
        if alert is None:
            raise ResourceNotFoundException("Alert", alert_id)
        return alert

    async def find_open(self, scope: AlertScope, alert_type: AlertType) -> Optional[Alert]:
        return await self._bounded(self._alert_repo.find_open(scope.key, alert_type))

    async def list_unread(
        self,
        limit: int = 100,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None
    ) -> List[Alert]:
        return await self._bounded(self._alert_repo.list_unread(limit, severity=severity, alert_type=alert_type))

    async def list_open(
        self,
        limit: int = 100,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None
    ) -> List[Alert]:
        return await self._bounded(self._alert_repo.list_open(limit, severity=severity, alert_type=alert_type))

    async def stats(self) -> AlertStats:
        return await self._bounded(self._alert_repo.count_by_state())

    async def _apply_escalation(self, alert: Alert, now: datetime) -> bool:
        expected_count = alert.escalation_count
        alert.escalate(now)
        applied = await self._bounded(self._alert_repo.update_escalation(alert, expected_count))
        if not applied:
            logger.info(
                "Alert changed before escalation was written, skipping",
                extra={"alert_id": alert.id, "expected_count": expected_count}
            )
            return False

        logger.warning(
            "Alert escalated",
            extra={
                "alert_id": alert.id,
                "alert_type": alert.alert_type.value,
                "escalation_level": alert.escalation_level.value,
                "escalation_count": alert.escalation_count,
                "severity": alert.severity.value
            }
        )
        await self._notify(alert)
        return True

    async def _notify(self, alert: Alert) -> None:
        if self._dispatcher is None:
            return
        try:
            await asyncio.wait_for(self._dispatcher.send(alert), timeout=self._dispatch_timeout)
        except DispatchException as e:
            logger.warning(
                "Alert notification failed",
                extra={"alert_id": alert.id, "error": e.message}
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Alert notification timed out",
                extra={"alert_id": alert.id, "timeout_seconds": self._dispatch_timeout}
            )
        except Exception:
            logger.exception("Unexpected error dispatching alert", extra={"alert_id": alert.id})

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._call_timeout)


class VisitService:
    """
    Explicit visit transitions and reads.

    Reads return visits with derived fields recomputed for the current
    instant, so callers never see a stale cached flag.
    """

    def __init__(
        self,
        visit_repository: IVisitRepository,
        config_provider: IMonitorConfigProvider
    ):
        self._visit_repo = visit_repository
        self._config_provider = config_provider

    async def create(self, visit: Visit) -> Visit:
        """Register a new visit. The entity has already validated its window."""
        created = await self._visit_repo.add(visit)
        logger.info(
            "Visit created",
            extra={
                "visit_id": created.id,
                "representative_id": created.representative_id,
                "scheduled_start": created.scheduled_start.isoformat()
            }
        )
        return created

    async def get(self, visit_id: str, now: Optional[datetime] = None) -> Visit:
        visit = await self._require(visit_id)
        return self._with_evaluation(visit, now or _utcnow())

    async def list(
        self,
        status: Optional[VisitStatus] = None,
        representative_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
        now: Optional[datetime] = None
    ) -> List[Visit]:
        now = now or _utcnow()
        visits = await self._visit_repo.list(
            status=status, representative_id=representative_id, limit=limit, offset=offset
        )
        return [self._with_evaluation(visit, now) for visit in visits]

    async def check_in(self, visit_id: str, now: Optional[datetime] = None) -> Visit:
        visit = await self._require(visit_id)
        visit.check_in(now or _utcnow())
        return await self._persist(visit, "check_in")

    async def check_out(self, visit_id: str, now: Optional[datetime] = None) -> Visit:
        visit = await self._require(visit_id)
        visit.check_out(now or _utcnow())
        return await self._persist(visit, "check_out")

    async def cancel(self, visit_id: str, now: Optional[datetime] = None) -> Visit:
        visit = await self._require(visit_id)
        visit.cancel(now or _utcnow())
        return await self._persist(visit, "cancel")

    async def _require(self, visit_id: str) -> Visit:
        visit = await self._visit_repo.get(visit_id)
        if visit is None:
            raise ResourceNotFoundException("Visit", visit_id)
        return visit

    async def _persist(self, visit: Visit, transition: str) -> Visit:
        saved = await self._visit_repo.save(visit)
        logger.info(
            "Visit transition applied",
            extra={"visit_id": saved.id, "transition": transition, "status": saved.status.value}
        )
        return saved

    def _with_evaluation(self, visit: Visit, now: datetime) -> Visit:
        evaluation = VisitStateMachine.evaluate(visit, now, self._config_provider.get_config())
        if not evaluation.differs_from(visit):
            return visit
        return replace(
            visit,
            status=evaluation.status,
            is_late=evaluation.is_late,
            exceeds_time_limit=evaluation.exceeds_time_limit
        )


@dataclass
class SweepReport:
    """Outcome of one monitor tick."""
    kind: str
    started_at: Optional[datetime] = None
    evaluated: int = 0
    flags_updated: int = 0
    alerts_created: int = 0
    alerts_resolved: int = 0
    alerts_escalated: int = 0
    failures: int = 0
    skipped: bool = False
    cancelled: bool = False
    error: Optional[str] = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat() if self.started_at else None
        return data


class SLAMonitor:
    """
    Periodic re-evaluation of active visits and representative presence.

    Each sweep is non-reentrant: a call made while the previous sweep of
    the same kind is still in flight returns a ``skipped`` report. Failures
    are isolated per visit / per representative; a sweep-level failure is
    logged and retried on the next tick.
    """

    def __init__(
        self,
        visit_repository: IVisitRepository,
        alert_engine: AlertEngine,
        config_provider: IMonitorConfigProvider,
        presence_tracker: Optional[PresenceTracker] = None,
        call_timeout: float = 5.0
    ):
        self._visit_repo = visit_repository
        self._engine = alert_engine
        self._config_provider = config_provider
        self._presence_tracker = presence_tracker
        self._call_timeout = call_timeout

        self._sweep_lock = asyncio.Lock()
        self._presence_lock = asyncio.Lock()
        # Online state seen by the previous presence sweep, per representative
        self._presence_state: Dict[str, bool] = {}

        self.last_visit_report: Optional[SweepReport] = None
        self.last_presence_report: Optional[SweepReport] = None

    @property
    def is_sweeping(self) -> bool:
        return self._sweep_lock.locked() or self._presence_lock.locked()

    # ----- visit sweep -----

    async def sweep(
        self,
        now: Optional[datetime] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> SweepReport:
        """Evaluate every active visit once."""
        if self._sweep_lock.locked():
            logger.warning("Visit sweep still in flight, skipping tick")
            return SweepReport(kind="visits", skipped=True)

        async with self._sweep_lock:
            report = await self._run_visit_sweep(now or _utcnow(), cancel_event)
            self.last_visit_report = report
            return report

    async def _run_visit_sweep(
        self,
        now: datetime,
        cancel_event: Optional[asyncio.Event]
    ) -> SweepReport:
        log = get_context_logger(__name__, correlation_id=f"sweep-{uuid4()}")
        report = SweepReport(kind="visits", started_at=now)
        config = self._config_provider.get_config()
        start = time.perf_counter()

        with log_latency(log, "visit_sweep"):
            try:
                visits = await self._bounded(self._visit_repo.list_active())
            except (RepositoryException, asyncio.TimeoutError) as e:
                report.error = str(e) or type(e).__name__
                log.error("Visit sweep could not list active visits", extra={"error": report.error})
                return report

            for visit in visits:
                if cancel_event is not None and cancel_event.is_set():
                    report.cancelled = True
                    log.info("Visit sweep cancelled", extra={"evaluated": report.evaluated})
                    break
                await self._isolated(
                    self._evaluate_visit(visit.id, now, config, report),
                    report, log, visit_id=visit.id
                )

        report.duration_ms = round((time.perf_counter() - start) * 1000, 2)
        log.info("Visit sweep summary", extra=report.to_dict())
        return report

    async def _evaluate_visit(
        self,
        visit_id: str,
        now: datetime,
        config: MonitorConfig,
        report: SweepReport
    ) -> None:
        # Re-read so a cancellation committed after list_active is honoured
        visit = await self._bounded(self._visit_repo.get(visit_id))
        if visit is None:
            raise ResourceNotFoundException("Visit", visit_id)
        if visit.status.is_terminal:
            return

        report.evaluated += 1
        evaluation = VisitStateMachine.evaluate(visit, now, config)

        # Alerts first: if this fails the stored flags stay stale and the
        # edge is seen again next tick.
        for alert_type in self._rising_edges(visit, evaluation):
            _, created = await self._engine.create_or_get(
                alert_type,
                self._visit_message(alert_type, visit, evaluation),
                visit_id=visit.id,
                representative_id=visit.representative_id,
                metadata={
                    "delay_minutes": evaluation.delay_minutes,
                    "overrun_minutes": evaluation.overrun_minutes,
                    "customer_name": visit.customer_name,
                },
                now=now
            )
            if created:
                report.alerts_created += 1

        if evaluation.differs_from(visit):
            applied = await self._bounded(self._visit_repo.update_flags(
                visit.id,
                evaluation.status,
                evaluation.is_late,
                evaluation.exceeds_time_limit,
                expected_status=visit.status
            ))
            if applied:
                report.flags_updated += 1
            else:
                logger.info(
                    "Visit changed during sweep, derived fields not written",
                    extra={"visit_id": visit.id}
                )

        for alert_type in self._conditions_holding(evaluation):
            alert = await self._engine.find_open(AlertScope(visit_id=visit.id), alert_type)
            if alert is not None and await self._engine.escalate_if_due(alert, now):
                report.alerts_escalated += 1

    @staticmethod
    def _rising_edges(visit: Visit, evaluation: VisitEvaluation) -> List[AlertType]:
        edges = []
        if evaluation.is_late and not visit.is_late:
            edges.append(AlertType.LATE_ARRIVAL)
        if evaluation.exceeds_time_limit and not visit.exceeds_time_limit:
            edges.append(AlertType.TIME_EXCEEDED)
        if evaluation.status == VisitStatus.NO_SHOW and visit.status != VisitStatus.NO_SHOW:
            edges.append(AlertType.NO_SHOW)
        return edges

    @staticmethod
    def _conditions_holding(evaluation: VisitEvaluation) -> List[AlertType]:
        holding = []
        if evaluation.is_late:
            holding.append(AlertType.LATE_ARRIVAL)
        if evaluation.exceeds_time_limit:
            holding.append(AlertType.TIME_EXCEEDED)
        return holding

    @staticmethod
    def _visit_message(alert_type: AlertType, visit: Visit, evaluation: VisitEvaluation) -> str:
        who = visit.representative_name or visit.representative_id
        if alert_type == AlertType.LATE_ARRIVAL:
            return (
                f"Representative {who} is {evaluation.delay_minutes} minutes late "
                f"for visit at {visit.customer_name}"
            )
        if alert_type == AlertType.TIME_EXCEEDED:
            return (
                f"Representative {who} has exceeded the allowed {visit.allowed_duration_minutes} minutes "
                f"at {visit.customer_name} by {evaluation.overrun_minutes} minutes"
            )
        return f"Representative {who} did not show up for visit at {visit.customer_name}"

    # ----- presence sweep -----

    async def sweep_presence(self, now: Optional[datetime] = None) -> SweepReport:
        """Recompute online state of every representative and alert on online->offline edges."""
        if self._presence_tracker is None:
            return SweepReport(kind="presence", skipped=True)

        if self._presence_lock.locked():
            logger.warning("Presence sweep still in flight, skipping tick")
            return SweepReport(kind="presence", skipped=True)

        async with self._presence_lock:
            report = await self._run_presence_sweep(now or _utcnow())
            self.last_presence_report = report
            return report

    async def _run_presence_sweep(self, now: datetime) -> SweepReport:
        log = get_context_logger(__name__, correlation_id=f"presence-{uuid4()}")
        report = SweepReport(kind="presence", started_at=now)
        config = self._config_provider.get_config()
        start = time.perf_counter()

        try:
            snapshots = await self._bounded(self._presence_tracker.list_snapshots(now))
        except (RepositoryException, asyncio.TimeoutError) as e:
            report.error = str(e) or type(e).__name__
            log.error("Presence sweep could not list representatives", extra={"error": report.error})
            return report

        for snapshot in snapshots:
            await self._isolated(
                self._evaluate_presence(snapshot, now, config, report),
                report, log, representative_id=snapshot.representative_id
            )

        report.duration_ms = round((time.perf_counter() - start) * 1000, 2)
        log.info("Presence sweep summary", extra=report.to_dict())
        return report

    async def _evaluate_presence(
        self,
        snapshot: PresenceSnapshot,
        now: datetime,
        config: MonitorConfig,
        report: SweepReport
    ) -> None:
        representative_id = snapshot.representative_id
        scope = AlertScope(representative_id=representative_id)
        previous = self._presence_state.get(representative_id)
        report.evaluated += 1

        if previous is True and not snapshot.is_online and config.presence_alerts_enabled:
            last_seen = snapshot.last_seen.isoformat() if snapshot.last_seen else "never"
            _, created = await self._engine.create_or_get(
                AlertType.PRESENCE_CHANGE,
                f"Representative {representative_id} went offline (last seen {last_seen})",
                representative_id=representative_id,
                metadata={"last_seen": last_seen},
                now=now
            )
            if created:
                report.alerts_created += 1
        elif previous is False and snapshot.is_online:
            resolved = await self._engine.resolve_open(scope, AlertType.PRESENCE_CHANGE, "system", now)
            if resolved is not None:
                report.alerts_resolved += 1

        if not snapshot.is_online and config.presence_alerts_enabled:
            alert = await self._engine.find_open(scope, AlertType.PRESENCE_CHANGE)
            if alert is not None and await self._engine.escalate_if_due(alert, now):
                report.alerts_escalated += 1

        # Only remember the new state once the edge has been handled
        self._presence_state[representative_id] = snapshot.is_online

    # ----- helpers -----

    async def _isolated(self, work: Awaitable[None], report: SweepReport, log, **context: Any) -> None:
        """Run per-item work; any failure is logged and counted, never propagated."""
        try:
            await work
        except ResourceNotFoundException as e:
            report.failures += 1
            log.warning("Item disappeared during sweep", extra={**context, "error": e.message})
        except asyncio.TimeoutError:
            report.failures += 1
            log.warning("Store call timed out during sweep", extra={**context, "timeout_seconds": self._call_timeout})
        except ApplicationException as e:
            report.failures += 1
            log.warning("Sweep item failed", extra={**context, "error": e.message})
        except Exception:
            report.failures += 1
            log.exception("Unexpected error during sweep", extra=context)

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._call_timeout)
