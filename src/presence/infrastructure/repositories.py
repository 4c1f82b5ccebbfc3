"""
Presence Infrastructure Repositories
====================================

SQLAlchemy and in-memory implementations of the presence and attendance
repositories.
"""

import asyncio
from copy import deepcopy
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import AttendanceStatus
from src.core import TransientStoreException
from src.infrastructure.database import as_utc, unit_of_work
from src.presence.application.services import IAttendanceRepository, IPresenceRepository
from src.presence.domain import AttendanceRecord, Coordinates, PresenceRecord
from src.presence.infrastructure.models import AttendanceModel, PresenceModel


class SQLAlchemyPresenceRepository(IPresenceRepository):
    """Latest-ping table keyed by representative."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get_last_seen(self, representative_id: str) -> Optional[datetime]:
        stmt = select(PresenceModel.last_seen).where(PresenceModel.representative_id == representative_id)
        async with unit_of_work(self._session_maker, "presence.get_last_seen") as session:
            return as_utc(await session.scalar(stmt))

    async def upsert_ping(
        self,
        representative_id: str,
        coordinates: Optional[Coordinates],
        timestamp: datetime,
        accuracy: Optional[float] = None,
        battery_level: Optional[float] = None
    ) -> PresenceRecord:
        try:
            async with unit_of_work(self._session_maker, "presence.upsert_ping") as session:
                model = await session.get(PresenceModel, representative_id)
                if model is None:
                    model = PresenceModel(representative_id=representative_id)
                    session.add(model)
                elif as_utc(model.last_seen) >= timestamp:
                    # A newer ping won the race
                    return self._to_domain(model)

                model.last_seen = timestamp
                model.latitude = coordinates.latitude if coordinates else None
                model.longitude = coordinates.longitude if coordinates else None
                model.accuracy = accuracy
                model.battery_level = battery_level
                record = self._to_domain(model)
        except IntegrityError as e:
            raise TransientStoreException(
                "Concurrent first ping for representative",
                {"representative_id": representative_id}
            ) from e
        return record

    async def get(self, representative_id: str) -> Optional[PresenceRecord]:
        async with unit_of_work(self._session_maker, "presence.get") as session:
            model = await session.get(PresenceModel, representative_id)
            return self._to_domain(model) if model else None

    async def list_records(self) -> List[PresenceRecord]:
        stmt = select(PresenceModel).order_by(PresenceModel.representative_id)
        async with unit_of_work(self._session_maker, "presence.list_records") as session:
            result = await session.execute(stmt)
            return [self._to_domain(model) for model in result.scalars().all()]

    @staticmethod
    def _to_domain(model: PresenceModel) -> PresenceRecord:
        coordinates = None
        if model.latitude is not None and model.longitude is not None:
            coordinates = Coordinates(latitude=model.latitude, longitude=model.longitude)
        return PresenceRecord(
            representative_id=model.representative_id,
            last_seen=as_utc(model.last_seen),
            coordinates=coordinates,
            accuracy=model.accuracy,
            battery_level=model.battery_level,
        )


class SQLAlchemyAttendanceRepository(IAttendanceRepository):
    """Current attendance keyed by representative."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get(self, representative_id: str) -> Optional[AttendanceRecord]:
        async with unit_of_work(self._session_maker, "attendance.get") as session:
            model = await session.get(AttendanceModel, representative_id)
            if model is None:
                return None
            return AttendanceRecord(
                representative_id=model.representative_id,
                status=AttendanceStatus(model.status),
                check_in_time=as_utc(model.check_in_time),
                check_out_time=as_utc(model.check_out_time),
                total_hours=model.total_hours,
                updated_at=as_utc(model.updated_at),
            )

    async def save(self, record: AttendanceRecord) -> AttendanceRecord:
        async with unit_of_work(self._session_maker, "attendance.save") as session:
            model = await session.get(AttendanceModel, record.representative_id)
            if model is None:
                model = AttendanceModel(representative_id=record.representative_id)
                session.add(model)
            model.status = record.status.value
            model.check_in_time = record.check_in_time
            model.check_out_time = record.check_out_time
            model.total_hours = record.total_hours
            model.updated_at = record.updated_at
        return record


class InMemoryPresenceRepository(IPresenceRepository):
    """Dict-backed latest-ping store."""

    def __init__(self):
        self._records: Dict[str, PresenceRecord] = {}
        self._lock = asyncio.Lock()

    async def get_last_seen(self, representative_id: str) -> Optional[datetime]:
        async with self._lock:
            record = self._records.get(representative_id)
            return record.last_seen if record else None

    async def upsert_ping(
        self,
        representative_id: str,
        coordinates: Optional[Coordinates],
        timestamp: datetime,
        accuracy: Optional[float] = None,
        battery_level: Optional[float] = None
    ) -> PresenceRecord:
        async with self._lock:
            current = self._records.get(representative_id)
            if current is not None and current.last_seen >= timestamp:
                return deepcopy(current)
            record = PresenceRecord(
                representative_id=representative_id,
                last_seen=timestamp,
                coordinates=coordinates,
                accuracy=accuracy,
                battery_level=battery_level,
            )
            self._records[representative_id] = record
            return deepcopy(record)

    async def get(self, representative_id: str) -> Optional[PresenceRecord]:
        async with self._lock:
            record = self._records.get(representative_id)
            return deepcopy(record) if record else None

    async def list_records(self) -> List[PresenceRecord]:
        async with self._lock:
            return [deepcopy(self._records[key]) for key in sorted(self._records)]


class InMemoryAttendanceRepository(IAttendanceRepository):
    """Dict-backed attendance store."""

    def __init__(self):
        self._records: Dict[str, AttendanceRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, representative_id: str) -> Optional[AttendanceRecord]:
        async with self._lock:
            record = self._records.get(representative_id)
            return deepcopy(record) if record else None

    async def save(self, record: AttendanceRecord) -> AttendanceRecord:
        async with self._lock:
            self._records[record.representative_id] = deepcopy(record)
        return record
