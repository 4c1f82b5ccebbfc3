"""
Presence Controllers (API Routes)
=================================

FastAPI routes for location pings and attendance.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, status

from src.presence.application import (
    AttendanceRequest, AttendanceResponse, PingRequest,
    PresenceListResponse, PresenceResponse, PresenceTracker,
)
from src.presence.domain import Coordinates

presence_router = APIRouter(prefix="/presence", tags=["Presence"])


def get_presence_tracker(request: Request) -> PresenceTracker:
    return request.app.state.presence_tracker


@presence_router.post(
    "/{representative_id}/ping",
    response_model=PresenceResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record a location ping",
    description="Out-of-order pings older than the stored one are accepted and ignored."
)
async def record_ping(
    representative_id: str,
    payload: PingRequest,
    tracker: PresenceTracker = Depends(get_presence_tracker)
):
    coordinates = None
    if payload.latitude is not None and payload.longitude is not None:
        coordinates = Coordinates(latitude=payload.latitude, longitude=payload.longitude)

    now = datetime.now(timezone.utc)
    timestamp = payload.timestamp or now
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    await tracker.record_ping(
        representative_id,
        coordinates,
        now=min(timestamp, now),
        accuracy=payload.accuracy,
        battery_level=payload.battery_level
    )
    return PresenceResponse.from_domain(await tracker.snapshot(representative_id, now))


@presence_router.get("", response_model=PresenceListResponse, summary="Online status of all representatives")
async def list_presence(tracker: PresenceTracker = Depends(get_presence_tracker)):
    snapshots = await tracker.list_snapshots()
    online = sum(1 for s in snapshots if s.is_online)
    return PresenceListResponse(
        representatives=[PresenceResponse.from_domain(s) for s in snapshots],
        online_count=online,
        offline_count=len(snapshots) - online
    )


@presence_router.get("/{representative_id}", response_model=PresenceResponse, summary="Online status of one representative")
async def get_presence(representative_id: str, tracker: PresenceTracker = Depends(get_presence_tracker)):
    return PresenceResponse.from_domain(await tracker.snapshot(representative_id))


@presence_router.post(
    "/{representative_id}/attendance",
    response_model=AttendanceResponse,
    summary="Check in, check out or take a break",
    responses={409: {"description": "Action not allowed from the current attendance status"}}
)
async def set_attendance(
    representative_id: str,
    payload: AttendanceRequest,
    tracker: PresenceTracker = Depends(get_presence_tracker)
):
    record = await tracker.set_attendance(representative_id, payload.action)
    return AttendanceResponse.from_domain(record)
