"""
Presence Infrastructure Models
==============================

SQLAlchemy ORM models for the presence module.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database import Base
from src.config import AttendanceStatus


class PresenceModel(Base):
    """
    Latest ping per representative.

    Maps to the 'representative_presence' table.
    """
    __tablename__ = "representative_presence"

    representative_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    accuracy: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    battery_level: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class AttendanceModel(Base):
    """
    Current attendance per representative.

    Maps to the 'representative_attendance' table.
    """
    __tablename__ = "representative_attendance"

    representative_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=AttendanceStatus.CHECKED_OUT.value)

    check_in_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    total_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
