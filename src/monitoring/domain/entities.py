"""
Monitoring Domain Entities
==========================

Pure Python domain entities for visit monitoring.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from src.config import (
    AlertSeverity, AlertType, EscalationLevel, ESCALATION_LADDER,
    Priority, VisitStatus, VisitType,
)
from src.core import DomainException, ValidationException


@dataclass
class Visit:
    """
    Visit entity representing a scheduled on-site engagement.

    ``is_late`` and ``exceeds_time_limit`` are a cache of the last
    evaluation; the state machine is the source of truth for them.
    """

    # Core attributes
    id: str
    representative_id: str
    customer_name: str
    customer_address: str
    visit_type: VisitType
    priority: Priority
    scheduled_start: datetime
    scheduled_end: datetime
    allowed_duration_minutes: int

    status: VisitStatus = VisitStatus.SCHEDULED

    # Check-in / check-out
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None

    # Derived flags (last evaluation)
    is_late: bool = False
    exceeds_time_limit: bool = False

    representative_name: Optional[str] = None
    customer_id: Optional[str] = None
    notes: Optional[str] = None

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        """Validate visit window on initialization."""
        if self.scheduled_end <= self.scheduled_start:
            raise ValidationException(
                "scheduled_end must be after scheduled_start",
                {"visit_id": self.id}
            )
        if self.allowed_duration_minutes <= 0:
            raise ValidationException(
                "allowed_duration_minutes must be positive",
                {"visit_id": self.id}
            )

    @property
    def allowed_duration(self) -> timedelta:
        return timedelta(minutes=self.allowed_duration_minutes)

    def check_in(self, timestamp: Optional[datetime] = None) -> None:
        """Representative arrived; the visit starts now."""
        if not self.status.is_awaiting_start:
            raise DomainException(
                f"Cannot check in to a visit that is {self.status.value}",
                {"visit_id": self.id, "status": self.status.value}
            )
        now = timestamp or datetime.now(timezone.utc)
        self.actual_start = now
        self.status = VisitStatus.IN_PROGRESS
        self.is_late = False
        self.updated_at = now

    def check_out(self, timestamp: Optional[datetime] = None) -> None:
        """Representative left; the visit is complete."""
        if self.status != VisitStatus.IN_PROGRESS:
            raise DomainException(
                f"Cannot check out of a visit that is {self.status.value}",
                {"visit_id": self.id, "status": self.status.value}
            )
        now = timestamp or datetime.now(timezone.utc)
        self.actual_end = now
        self.status = VisitStatus.COMPLETED
        self.exceeds_time_limit = False
        self.updated_at = now

    def cancel(self, timestamp: Optional[datetime] = None) -> None:
        """Administrative cancellation of any non-terminal visit."""
        if self.status.is_terminal:
            raise DomainException(
                f"Cannot cancel a visit that is {self.status.value}",
                {"visit_id": self.id, "status": self.status.value}
            )
        self.status = VisitStatus.CANCELLED
        self.is_late = False
        self.exceeds_time_limit = False
        self.updated_at = timestamp or datetime.now(timezone.utc)


@dataclass(frozen=True)
class AlertScope:
    """
    What an alert is about: a visit, or a representative when no visit applies.

    The scope key is the first half of the dedup key ``(scope, alert_type)``.
    """
    visit_id: Optional[str] = None
    representative_id: Optional[str] = None

    def __post_init__(self):
        if not self.visit_id and not self.representative_id:
            raise ValidationException("Alert scope needs a visit_id or a representative_id")

    @property
    def key(self) -> str:
        if self.visit_id:
            return f"visit:{self.visit_id}"
        return f"representative:{self.representative_id}"


@dataclass
class Alert:
    """
    Alert entity.

    Created only by the alert engine, mutated by read/acknowledge/resolve/escalate,
    never deleted.
    """

    id: Optional[str]
    alert_type: AlertType
    severity: AlertSeverity
    message: str

    visit_id: Optional[str] = None
    representative_id: Optional[str] = None

    is_read: bool = False
    read_at: Optional[datetime] = None

    is_resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None

    escalation_level: EscalationLevel = EscalationLevel.INITIAL
    escalation_count: int = 0
    last_escalated_at: Optional[datetime] = None

    metadata: Dict[str, Any] = field(default_factory=dict)

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def scope(self) -> AlertScope:
        return AlertScope(visit_id=self.visit_id, representative_id=self.representative_id)

    @property
    def scope_key(self) -> str:
        return self.scope.key

    @property
    def is_open(self) -> bool:
        return not self.is_resolved

    def age_minutes(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds() / 60

    def mark_read(self, timestamp: Optional[datetime] = None) -> bool:
        """Mark alert as read. Returns False when it already was."""
        if self.is_read:
            return False
        self.is_read = True
        self.read_at = timestamp or datetime.now(timezone.utc)
        self.updated_at = self.read_at
        return True

    def mark_unread(self, timestamp: Optional[datetime] = None) -> bool:
        """Flag the alert for attention again. Returns False when it already was unread."""
        if not self.is_read:
            return False
        self.is_read = False
        self.read_at = None
        self.updated_at = timestamp or datetime.now(timezone.utc)
        return True

    def acknowledge(self, acknowledged_by: str, timestamp: Optional[datetime] = None) -> bool:
        """Record who took ownership. The first acknowledgement sticks."""
        if self.acknowledged_at is not None:
            return False
        self.acknowledged_by = acknowledged_by
        self.acknowledged_at = timestamp or datetime.now(timezone.utc)
        self.updated_at = self.acknowledged_at
        return True

    def resolve(self, resolved_by: str, timestamp: Optional[datetime] = None) -> bool:
        """Resolve alert. Returns False when it already was resolved."""
        if self.is_resolved:
            return False
        self.is_resolved = True
        self.resolved_at = timestamp or datetime.now(timezone.utc)
        self.resolved_by = resolved_by
        self.updated_at = self.resolved_at
        return True

    def escalate(self, timestamp: Optional[datetime] = None) -> None:
        """Advance one step on the escalation ladder (capped at critical)."""
        if self.is_resolved:
            raise DomainException(
                "Cannot escalate a resolved alert",
                {"alert_id": self.id}
            )
        now = timestamp or datetime.now(timezone.utc)
        self.escalation_count += 1
        self.escalation_level = ESCALATION_LADDER[min(self.escalation_count, len(ESCALATION_LADDER) - 1)]

        if self.escalation_level == EscalationLevel.CRITICAL:
            self.severity = AlertSeverity.CRITICAL
        elif self.escalation_level == EscalationLevel.ESCALATED:
            self.severity = self.severity.at_least(AlertSeverity.HIGH)

        self.last_escalated_at = now
        self.updated_at = now
