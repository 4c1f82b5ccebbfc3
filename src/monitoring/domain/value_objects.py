"""
Monitoring Value Objects
========================

Immutable value objects and stateless domain services for visit monitoring.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from src.config import AlertSeverity, AlertType, VisitStatus
from src.monitoring.domain.entities import Alert, Visit


DEFAULT_ALERT_SEVERITIES: Dict[AlertType, AlertSeverity] = {
    AlertType.LATE_ARRIVAL: AlertSeverity.HIGH,
    AlertType.TIME_EXCEEDED: AlertSeverity.MEDIUM,
    AlertType.NO_SHOW: AlertSeverity.CRITICAL,
    AlertType.PRESENCE_CHANGE: AlertSeverity.MEDIUM,
}


class MonitorConfig(BaseModel):
    """
    Monitor policy loaded from YAML.

    This is a value object - immutable and defined by its attributes.
    """
    grace_period_minutes: int = Field(
        default=0, ge=0,
        description="Minutes after scheduled_start before a visit counts as late"
    )
    no_show_after_minutes: Optional[int] = Field(
        default=None, ge=0,
        description="Minutes after scheduled_end before an unstarted visit is a no-show; unset disables"
    )
    online_window_minutes: int = Field(
        default=30, gt=0,
        description="A representative is online if pinged within this window"
    )
    escalation_thresholds_minutes: List[int] = Field(
        default_factory=lambda: [30, 60],
        description="Alert ages at which successive escalations happen"
    )
    presence_alerts_enabled: bool = Field(
        default=True,
        description="Raise presence_change alerts on online->offline edges"
    )
    alert_severities: Dict[AlertType, AlertSeverity] = Field(
        default_factory=lambda: dict(DEFAULT_ALERT_SEVERITIES),
        description="Initial severity per alert type"
    )

    model_config = {"frozen": True}

    @field_validator("escalation_thresholds_minutes")
    @classmethod
    def validate_thresholds(cls, v: List[int]) -> List[int]:
        """Thresholds must be positive and strictly increasing."""
        if any(minutes <= 0 for minutes in v):
            raise ValueError("escalation thresholds must be positive")
        if any(later <= earlier for earlier, later in zip(v, v[1:])):
            raise ValueError("escalation thresholds must be strictly increasing")
        return v

    @field_validator("alert_severities")
    @classmethod
    def fill_alert_severities(cls, v: Dict[AlertType, AlertSeverity]) -> Dict[AlertType, AlertSeverity]:
        """Missing alert types fall back to their default severity."""
        return {**DEFAULT_ALERT_SEVERITIES, **v}

    @property
    def grace_period(self) -> timedelta:
        return timedelta(minutes=self.grace_period_minutes)

    @property
    def online_window(self) -> timedelta:
        return timedelta(minutes=self.online_window_minutes)

    def severity_for(self, alert_type: AlertType) -> AlertSeverity:
        return self.alert_severities[alert_type]


@dataclass(frozen=True)
class VisitEvaluation:
    """Outcome of evaluating a visit at one instant."""
    status: VisitStatus
    is_late: bool
    exceeds_time_limit: bool
    delay_minutes: int = 0
    overrun_minutes: int = 0

    def differs_from(self, visit: Visit) -> bool:
        """Whether the stored derived fields are stale."""
        return (
            self.status != visit.status
            or self.is_late != visit.is_late
            or self.exceeds_time_limit != visit.exceeds_time_limit
        )


class VisitStateMachine:
    """
    Pure, time-parameterized evaluation of a visit.

    Calling ``evaluate`` twice with the same ``now`` yields the same result
    and has no side effects; alerting is the monitor's job.
    """

    @staticmethod
    def evaluate(
        visit: Visit,
        now: datetime,
        config: Optional[MonitorConfig] = None
    ) -> VisitEvaluation:
        config = config or MonitorConfig()

        if visit.status.is_terminal:
            return VisitEvaluation(status=visit.status, is_late=False, exceeds_time_limit=False)

        if visit.status == VisitStatus.IN_PROGRESS:
            return VisitStateMachine._evaluate_in_progress(visit, now)

        # scheduled / late: not started yet
        if visit.actual_start is not None:
            return VisitEvaluation(status=visit.status, is_late=False, exceeds_time_limit=False)

        delay_minutes = max(0, int((now - visit.scheduled_start).total_seconds() // 60))

        if config.no_show_after_minutes is not None:
            no_show_at = visit.scheduled_end + timedelta(minutes=config.no_show_after_minutes)
            if now > no_show_at:
                return VisitEvaluation(
                    status=VisitStatus.NO_SHOW,
                    is_late=False,
                    exceeds_time_limit=False,
                    delay_minutes=delay_minutes
                )

        if now > visit.scheduled_start + config.grace_period:
            return VisitEvaluation(
                status=VisitStatus.LATE,
                is_late=True,
                exceeds_time_limit=False,
                delay_minutes=delay_minutes
            )

        return VisitEvaluation(status=VisitStatus.SCHEDULED, is_late=False, exceeds_time_limit=False)

    @staticmethod
    def _evaluate_in_progress(visit: Visit, now: datetime) -> VisitEvaluation:
        if visit.actual_start is None:
            return VisitEvaluation(status=VisitStatus.IN_PROGRESS, is_late=False, exceeds_time_limit=False)

        elapsed = now - visit.actual_start
        exceeds = elapsed > visit.allowed_duration
        overrun = int((elapsed - visit.allowed_duration).total_seconds() // 60) if exceeds else 0
        return VisitEvaluation(
            status=VisitStatus.IN_PROGRESS,
            is_late=False,
            exceeds_time_limit=exceeds,
            overrun_minutes=overrun
        )


class EscalationPolicy:
    """
    Decides when an open alert is due for its next escalation.

    An alert whose age has passed ``n`` thresholds should have been
    escalated ``n`` times; one step is taken per evaluation.
    """

    @staticmethod
    def thresholds_passed(alert: Alert, now: datetime, thresholds_minutes: List[int]) -> int:
        age = alert.age_minutes(now)
        return sum(1 for threshold in thresholds_minutes if age >= threshold)

    @staticmethod
    def is_due(alert: Alert, now: datetime, thresholds_minutes: List[int]) -> bool:
        if alert.is_resolved:
            return False
        return EscalationPolicy.thresholds_passed(alert, now, thresholds_minutes) > alert.escalation_count
