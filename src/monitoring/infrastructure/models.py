"""
Monitoring Infrastructure Models
================================

SQLAlchemy ORM models for the monitoring module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database import Base
from src.config import AlertSeverity, EscalationLevel, Priority, VisitStatus, VisitType


class VisitModel(Base):
    """
    Database model for Visit entity.

    Maps to the 'visits' table.
    """
    __tablename__ = "visits"

    # Primary key (assigned by the caller)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    representative_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    representative_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Customer
    customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_address: Mapped[str] = mapped_column(Text, nullable=False)

    visit_type: Mapped[str] = mapped_column(String(50), nullable=False, default=VisitType.MEETING.value)
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default=Priority.MEDIUM.value)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=VisitStatus.SCHEDULED.value, index=True)

    # Schedule
    scheduled_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scheduled_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    allowed_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    # Check-in / check-out
    actual_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Derived flags written by the monitor
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    exceeds_time_limit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class AlertModel(Base):
    """
    Database model for Alert entity.

    Maps to the 'alerts' table. The partial unique index enforces at most
    one unresolved alert per (scope_key, alert_type).
    """
    __tablename__ = "alerts"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Scope
    scope_key: Mapped[str] = mapped_column(String(320), nullable=False)
    visit_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    representative_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    # Alert details
    alert_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(50), nullable=False, default=AlertSeverity.MEDIUM.value)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Lifecycle
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Escalation
    escalation_level: Mapped[str] = mapped_column(String(50), nullable=False, default=EscalationLevel.INITIAL.value)
    escalation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    extra: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index(
            "uq_alerts_open_scope_type",
            "scope_key",
            "alert_type",
            unique=True,
            postgresql_where=text("is_resolved = false"),
            sqlite_where=text("is_resolved = 0"),
        ),
    )
