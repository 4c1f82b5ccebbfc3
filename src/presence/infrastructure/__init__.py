"""
Presence Infrastructure Layer
=============================

- Models: SQLAlchemy ORM models
- Repositories: SQLAlchemy and in-memory data access
"""

from src.presence.infrastructure.models import PresenceModel, AttendanceModel
from src.presence.infrastructure.repositories import (
    SQLAlchemyPresenceRepository,
    SQLAlchemyAttendanceRepository,
    InMemoryPresenceRepository,
    InMemoryAttendanceRepository,
)

__all__ = [
    "PresenceModel",
    "AttendanceModel",
    "SQLAlchemyPresenceRepository",
    "SQLAlchemyAttendanceRepository",
    "InMemoryPresenceRepository",
    "InMemoryAttendanceRepository",
]
