"""
Presence Application DTOs
=========================

Pydantic models for the presence HTTP surface.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from src.presence.domain import AttendanceRecord, PresenceSnapshot

AttendanceActionStr = Literal["check_in", "check_out", "start_break", "end_break"]
AttendanceStatusStr = Literal["checked_in", "checked_out", "break"]


class PingRequest(BaseModel):
    """A location ping from a representative's device."""
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0, description="Accuracy radius in metres")
    battery_level: Optional[float] = Field(None, ge=0, le=100)
    timestamp: Optional[datetime] = Field(None, description="Device time of the ping; defaults to now")


class AttendanceRequest(BaseModel):
    action: AttendanceActionStr


class PresenceResponse(BaseModel):
    representative_id: str
    is_online: bool
    last_seen: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    attendance_status: Optional[AttendanceStatusStr] = None

    @classmethod
    def from_domain(cls, snapshot: PresenceSnapshot) -> "PresenceResponse":
        return cls(
            representative_id=snapshot.representative_id,
            is_online=snapshot.is_online,
            last_seen=snapshot.last_seen,
            latitude=snapshot.coordinates.latitude if snapshot.coordinates else None,
            longitude=snapshot.coordinates.longitude if snapshot.coordinates else None,
            attendance_status=snapshot.attendance_status.value if snapshot.attendance_status else None,
        )


class PresenceListResponse(BaseModel):
    representatives: List[PresenceResponse]
    online_count: int
    offline_count: int


class AttendanceResponse(BaseModel):
    representative_id: str
    status: AttendanceStatusStr
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    total_hours: Optional[float] = None

    @classmethod
    def from_domain(cls, record: AttendanceRecord) -> "AttendanceResponse":
        return cls(
            representative_id=record.representative_id,
            status=record.status.value,
            check_in_time=record.check_in_time,
            check_out_time=record.check_out_time,
            total_hours=record.total_hours,
        )
