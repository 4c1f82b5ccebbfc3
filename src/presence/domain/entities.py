"""
Presence Domain Entities
========================

Representative presence (derived from location pings) and attendance
(explicitly set by check-in/check-out actions).

The two dimensions are independent: presence is never inferred from
attendance and attendance is never inferred from presence.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from src.config import AttendanceStatus
from src.core import DomainException, ValidationException


@dataclass(frozen=True)
class Coordinates:
    """WGS84 coordinates of a ping."""
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90 <= self.latitude <= 90:
            raise ValidationException("latitude must be within [-90, 90]", {"latitude": self.latitude})
        if not -180 <= self.longitude <= 180:
            raise ValidationException("longitude must be within [-180, 180]", {"longitude": self.longitude})


@dataclass
class PresenceRecord:
    """Latest location ping of a representative."""
    representative_id: str
    last_seen: datetime
    coordinates: Optional[Coordinates] = None
    accuracy: Optional[float] = None
    battery_level: Optional[float] = None


class PresencePolicy:
    """Pure online/offline derivation from ping recency."""

    @staticmethod
    def is_online(last_seen: Optional[datetime], now: datetime, window: timedelta) -> bool:
        if last_seen is None:
            return False
        return (now - last_seen) <= window


@dataclass
class AttendanceRecord:
    """
    Attendance state of a representative.

    Transitions:
        checked_out --check_in--> checked_in
        checked_in --start_break--> break --end_break--> checked_in
        checked_in | break --check_out--> checked_out
    """
    representative_id: str
    status: AttendanceStatus = AttendanceStatus.CHECKED_OUT
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    total_hours: Optional[float] = None
    updated_at: Optional[datetime] = None

    def check_in(self, timestamp: Optional[datetime] = None) -> None:
        self._require(AttendanceStatus.CHECKED_OUT, action="check_in")
        now = timestamp or datetime.now(timezone.utc)
        self.status = AttendanceStatus.CHECKED_IN
        self.check_in_time = now
        self.check_out_time = None
        self.total_hours = None
        self.updated_at = now

    def start_break(self, timestamp: Optional[datetime] = None) -> None:
        self._require(AttendanceStatus.CHECKED_IN, action="start_break")
        self.status = AttendanceStatus.BREAK
        self.updated_at = timestamp or datetime.now(timezone.utc)

    def end_break(self, timestamp: Optional[datetime] = None) -> None:
        self._require(AttendanceStatus.BREAK, action="end_break")
        self.status = AttendanceStatus.CHECKED_IN
        self.updated_at = timestamp or datetime.now(timezone.utc)

    def check_out(self, timestamp: Optional[datetime] = None) -> None:
        self._require(AttendanceStatus.CHECKED_IN, AttendanceStatus.BREAK, action="check_out")
        now = timestamp or datetime.now(timezone.utc)
        self.status = AttendanceStatus.CHECKED_OUT
        self.check_out_time = now
        if self.check_in_time is not None:
            self.total_hours = round((now - self.check_in_time).total_seconds() / 3600, 2)
        self.updated_at = now

    def _require(self, *allowed: AttendanceStatus, action: str) -> None:
        if self.status not in allowed:
            raise DomainException(
                f"Cannot {action} while {self.status.value}",
                {"representative_id": self.representative_id, "status": self.status.value}
            )


@dataclass(frozen=True)
class PresenceSnapshot:
    """Read-side join of presence and attendance for display."""
    representative_id: str
    is_online: bool
    last_seen: Optional[datetime]
    coordinates: Optional[Coordinates]
    attendance_status: Optional[AttendanceStatus]
