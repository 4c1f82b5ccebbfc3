"""
Presence Domain Layer
=====================

Pure domain objects for representative presence and attendance.
"""

from src.presence.domain.entities import (
    Coordinates,
    PresenceRecord,
    PresencePolicy,
    AttendanceRecord,
    PresenceSnapshot,
)

__all__ = [
    "Coordinates",
    "PresenceRecord",
    "PresencePolicy",
    "AttendanceRecord",
    "PresenceSnapshot",
]
