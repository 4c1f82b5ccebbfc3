"""
Monitoring Application DTOs
===========================

Data Transfer Objects for the monitoring API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from src.config import AlertSeverity, AlertType, Priority, VisitStatus, VisitType
from src.monitoring.domain import Alert, Visit


# ========== Type Aliases for Literals ==========
VisitStatusStr = Literal["scheduled", "in_progress", "completed", "cancelled", "late", "no_show"]
VisitTypeStr = Literal["delivery", "pickup", "inspection", "maintenance", "meeting"]
PriorityStr = Literal["low", "medium", "high", "urgent"]
AlertTypeStr = Literal["late_arrival", "time_exceeded", "no_show", "presence_change"]
AlertSeverityStr = Literal["low", "medium", "high", "critical"]
EscalationLevelStr = Literal["initial", "escalated", "critical"]


# ========== Request DTOs ==========

class VisitCreateRequest(BaseModel):
    """Request model for scheduling a visit."""
    representative_id: str = Field(..., min_length=1)
    representative_name: Optional[str] = None
    customer_name: str = Field(..., min_length=1)
    customer_address: str = Field(..., min_length=1)
    customer_id: Optional[str] = None
    visit_type: VisitTypeStr = Field(default="meeting")
    priority: PriorityStr = Field(default="medium")
    scheduled_start: datetime
    scheduled_end: datetime
    allowed_duration_minutes: int = Field(..., gt=0, description="Time allowed on site once checked in")
    notes: Optional[str] = None

    @field_validator("scheduled_start", "scheduled_end")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Timestamps without an offset are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("scheduled_end")
    @classmethod
    def validate_scheduled_end(cls, v: datetime, info) -> datetime:
        """Ensure the visit window is not empty."""
        if "scheduled_start" in info.data and v <= info.data["scheduled_start"]:
            raise ValueError("scheduled_end must be after scheduled_start")
        return v

    def to_domain(self) -> Visit:
        return Visit(
            id=str(uuid4()),
            representative_id=self.representative_id,
            representative_name=self.representative_name,
            customer_name=self.customer_name,
            customer_address=self.customer_address,
            customer_id=self.customer_id,
            visit_type=VisitType(self.visit_type),
            priority=Priority(self.priority),
            scheduled_start=self.scheduled_start,
            scheduled_end=self.scheduled_end,
            allowed_duration_minutes=self.allowed_duration_minutes,
            notes=self.notes,
        )


class VisitQuery(BaseModel):
    """Query parameters for listing visits."""
    status: Optional[VisitStatusStr] = None
    representative_id: Optional[str] = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)

    @property
    def status_enum(self) -> Optional[VisitStatus]:
        return VisitStatus(self.status) if self.status else None


class ResolveAlertRequest(BaseModel):
    resolved_by: str = Field(..., min_length=1, description="Who resolved the alert")


class AcknowledgeAlertRequest(BaseModel):
    acknowledged_by: str = Field(..., min_length=1, description="Who takes ownership of the alert")


class AlertQuery(BaseModel):
    """Query parameters for listing alerts."""
    view: Literal["open", "unread"] = "open"
    severity: Optional[AlertSeverityStr] = None
    alert_type: Optional[AlertTypeStr] = None
    limit: int = Field(default=100, ge=1, le=1000)

    @property
    def severity_enum(self) -> Optional[AlertSeverity]:
        return AlertSeverity(self.severity) if self.severity else None

    @property
    def alert_type_enum(self) -> Optional[AlertType]:
        return AlertType(self.alert_type) if self.alert_type else None


# ========== Response DTOs ==========

class VisitResponse(BaseModel):
    """Response model for a visit with freshly evaluated flags."""
    id: str
    representative_id: str
    representative_name: Optional[str] = None
    customer_name: str
    customer_address: str
    customer_id: Optional[str] = None
    visit_type: VisitTypeStr
    priority: PriorityStr
    status: VisitStatusStr
    scheduled_start: datetime
    scheduled_end: datetime
    allowed_duration_minutes: int
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    is_late: bool
    exceeds_time_limit: bool
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, visit: Visit) -> "VisitResponse":
        return cls(
            id=visit.id,
            representative_id=visit.representative_id,
            representative_name=visit.representative_name,
            customer_name=visit.customer_name,
            customer_address=visit.customer_address,
            customer_id=visit.customer_id,
            visit_type=visit.visit_type.value,
            priority=visit.priority.value,
            status=visit.status.value,
            scheduled_start=visit.scheduled_start,
            scheduled_end=visit.scheduled_end,
            allowed_duration_minutes=visit.allowed_duration_minutes,
            actual_start=visit.actual_start,
            actual_end=visit.actual_end,
            is_late=visit.is_late,
            exceeds_time_limit=visit.exceeds_time_limit,
            notes=visit.notes,
            created_at=visit.created_at,
            updated_at=visit.updated_at,
        )


class VisitListResponse(BaseModel):
    visits: List[VisitResponse]
    total: int


class AlertResponse(BaseModel):
    """Response model for an alert."""
    id: str
    alert_type: AlertTypeStr
    severity: AlertSeverityStr
    message: str
    visit_id: Optional[str] = None
    representative_id: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    is_resolved: bool
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    escalation_level: EscalationLevelStr
    escalation_count: int
    last_escalated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_domain(cls, alert: Alert) -> "AlertResponse":
        return cls(
            id=alert.id,
            alert_type=alert.alert_type.value,
            severity=alert.severity.value,
            message=alert.message,
            visit_id=alert.visit_id,
            representative_id=alert.representative_id,
            is_read=alert.is_read,
            read_at=alert.read_at,
            is_resolved=alert.is_resolved,
            resolved_at=alert.resolved_at,
            resolved_by=alert.resolved_by,
            acknowledged_by=alert.acknowledged_by,
            acknowledged_at=alert.acknowledged_at,
            escalation_level=alert.escalation_level.value,
            escalation_count=alert.escalation_count,
            last_escalated_at=alert.last_escalated_at,
            metadata=alert.metadata,
            created_at=alert.created_at,
        )


class AlertListResponse(BaseModel):
    alerts: List[AlertResponse]
    total: int


class AlertStatsResponse(BaseModel):
    total: int
    open: int
    unread: int
    resolved: int
    open_by_severity: Dict[str, int] = Field(default_factory=dict)


class SweepReportResponse(BaseModel):
    """Outcome of a monitor tick."""
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


class MonitorStatusResponse(BaseModel):
    scheduler_running: bool
    sweep_in_flight: bool
    last_visit_sweep: Optional[SweepReportResponse] = None
    last_presence_sweep: Optional[SweepReportResponse] = None
