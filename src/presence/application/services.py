"""
Presence Application Services
=============================

Application services orchestrate presence and attendance logic and
coordinate with repositories.

Following SOLID principles:
- Single Responsibility: the tracker only records and derives presence
- Dependency Inversion: depend on repository abstractions
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from src.core import ValidationException
from src.presence.domain import (
    AttendanceRecord, Coordinates, PresencePolicy,
    PresenceRecord, PresenceSnapshot,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ONLINE_WINDOW = timedelta(minutes=30)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IPresenceRepository(ABC):
    """Interface for latest-ping storage."""

    @abstractmethod
    async def get_last_seen(self, representative_id: str) -> Optional[datetime]:
        """Get the timestamp of the latest ping, if any."""

    @abstractmethod
    async def upsert_ping(
        self,
        representative_id: str,
        coordinates: Optional[Coordinates],
        timestamp: datetime,
        accuracy: Optional[float] = None,
        battery_level: Optional[float] = None
    ) -> PresenceRecord:
        """Store the latest ping for a representative."""

    @abstractmethod
    async def get(self, representative_id: str) -> Optional[PresenceRecord]:
        """Get the full presence record."""

    @abstractmethod
    async def list_records(self) -> List[PresenceRecord]:
        """List every representative's presence record."""


class IAttendanceRepository(ABC):
    """Interface for attendance storage."""

    @abstractmethod
    async def get(self, representative_id: str) -> Optional[AttendanceRecord]:
        """Get current attendance of a representative."""

    @abstractmethod
    async def save(self, record: AttendanceRecord) -> AttendanceRecord:
        """Insert or update attendance."""


# ========== Application Services ==========

ATTENDANCE_ACTIONS = ("check_in", "check_out", "start_break", "end_break")


class PresenceTracker:
    """
    Records pings and derives online/offline status.

    ``is_online`` is always recomputed from ``last_seen`` and the current
    window; it is never stored.
    """

    def __init__(
        self,
        presence_repository: IPresenceRepository,
        attendance_repository: IAttendanceRepository,
        online_window: Optional[Callable[[], timedelta]] = None
    ):
        self._presence_repo = presence_repository
        self._attendance_repo = attendance_repository
        self._online_window = online_window or (lambda: DEFAULT_ONLINE_WINDOW)

    async def record_ping(
        self,
        representative_id: str,
        coordinates: Optional[Coordinates] = None,
        now: Optional[datetime] = None,
        accuracy: Optional[float] = None,
        battery_level: Optional[float] = None
    ) -> PresenceRecord:
        """
        Upsert the latest ping.

        A ping older than the stored one (delivered out of order) is ignored
        so ``last_seen`` never moves backwards.
        """
        if not representative_id:
            raise ValidationException("representative_id is required")

        timestamp = now or datetime.now(timezone.utc)
        current = await self._presence_repo.get(representative_id)
        if current is not None and current.last_seen >= timestamp:
            logger.debug(
                "Ignoring stale ping",
                extra={"representative_id": representative_id, "ping_at": timestamp.isoformat()}
            )
            return current

        return await self._presence_repo.upsert_ping(
            representative_id, coordinates, timestamp,
            accuracy=accuracy, battery_level=battery_level
        )

    async def is_online(self, representative_id: str, now: Optional[datetime] = None) -> bool:
        last_seen = await self._presence_repo.get_last_seen(representative_id)
        return PresencePolicy.is_online(
            last_seen, now or datetime.now(timezone.utc), self._online_window()
        )

    async def snapshot(self, representative_id: str, now: Optional[datetime] = None) -> PresenceSnapshot:
        now = now or datetime.now(timezone.utc)
        record = await self._presence_repo.get(representative_id)
        attendance = await self._attendance_repo.get(representative_id)
        return self._join(representative_id, record, attendance, now)

    async def list_snapshots(self, now: Optional[datetime] = None) -> List[PresenceSnapshot]:
        """Snapshots of every representative that has ever pinged."""
        now = now or datetime.now(timezone.utc)
        snapshots = []
        for record in await self._presence_repo.list_records():
            attendance = await self._attendance_repo.get(record.representative_id)
            snapshots.append(self._join(record.representative_id, record, attendance, now))
        return snapshots

    async def set_attendance(
        self,
        representative_id: str,
        action: str,
        now: Optional[datetime] = None
    ) -> AttendanceRecord:
        """Apply an explicit attendance action (check_in, check_out, start_break, end_break)."""
        if action not in ATTENDANCE_ACTIONS:
            raise ValidationException(
                f"Unknown attendance action '{action}'",
                {"allowed": list(ATTENDANCE_ACTIONS)}
            )

        record = await self._attendance_repo.get(representative_id)
        if record is None:
            record = AttendanceRecord(representative_id=representative_id)

        getattr(record, action)(now or datetime.now(timezone.utc))
        saved = await self._attendance_repo.save(record)

        logger.info(
            "Attendance updated",
            extra={"representative_id": representative_id, "action": action, "status": saved.status.value}
        )
        return saved

    def _join(
        self,
        representative_id: str,
        record: Optional[PresenceRecord],
        attendance: Optional[AttendanceRecord],
        now: datetime
    ) -> PresenceSnapshot:
        last_seen = record.last_seen if record else None
        return PresenceSnapshot(
            representative_id=representative_id,
            is_online=PresencePolicy.is_online(last_seen, now, self._online_window()),
            last_seen=last_seen,
            coordinates=record.coordinates if record else None,
            attendance_status=attendance.status if attendance else None,
        )

