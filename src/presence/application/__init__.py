"""
Presence Application Layer
==========================

Contains:
- Services: PresenceTracker
- DTOs: Pydantic models for the HTTP surface
- Repository interfaces for presence and attendance storage
"""

from src.presence.application.dto import (
    PingRequest,
    AttendanceRequest,
    PresenceResponse,
    PresenceListResponse,
    AttendanceResponse,
)
from src.presence.application.services import (
    PresenceTracker,
    IPresenceRepository,
    IAttendanceRepository,
    ATTENDANCE_ACTIONS,
)

__all__ = [
    # DTOs
    "PingRequest",
    "AttendanceRequest",
    "PresenceResponse",
    "PresenceListResponse",
    "AttendanceResponse",
    # Services
    "PresenceTracker",
    "ATTENDANCE_ACTIONS",
    # Repository Interfaces
    "IPresenceRepository",
    "IAttendanceRepository",
]
