"""
Monitoring Controllers (API Routes)
===================================

FastAPI routes for visits, alerts and the monitor itself.

Controllers are thin - they delegate to application services, which are
built once at startup and kept on ``app.state``.
"""

from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, status

from src.monitoring.application import (
    AcknowledgeAlertRequest, AlertEngine, AlertListResponse, AlertQuery, AlertResponse, AlertStatsResponse,
    MonitorStatusResponse, ResolveAlertRequest, SLAMonitor, SweepReportResponse,
    VisitCreateRequest, VisitListResponse, VisitQuery, VisitResponse, VisitService,
)
from src.shared.infrastructure.logging import get_context_logger

visits_router = APIRouter(prefix="/visits", tags=["Visits"])
alerts_router = APIRouter(prefix="/alerts", tags=["Alerts"])
monitor_router = APIRouter(prefix="/monitor", tags=["Monitor"])


# ========== Example payloads for Swagger ==========

VISIT_CREATE_EXAMPLE = {
    "representative_id": "rep-042",
    "representative_name": "Dana Whitfield",
    "customer_name": "Northwind Traders",
    "customer_address": "12 Harbour Road, Leeds",
    "visit_type": "inspection",
    "priority": "high",
    "scheduled_start": "2024-03-04T09:00:00Z",
    "scheduled_end": "2024-03-04T10:00:00Z",
    "allowed_duration_minutes": 45
}

SWEEP_REPORT_EXAMPLE = {
    "kind": "visits",
    "started_at": "2024-03-04T09:05:00Z",
    "evaluated": 12,
    "flags_updated": 1,
    "alerts_created": 1,
    "alerts_resolved": 0,
    "alerts_escalated": 0,
    "failures": 0,
    "skipped": False,
    "cancelled": False,
    "error": None,
    "duration_ms": 38.2
}


# ========== Dependencies ==========

def get_visit_service(request: Request) -> VisitService:
    return request.app.state.visit_service


def get_alert_engine(request: Request) -> AlertEngine:
    return request.app.state.alert_engine


def get_sla_monitor(request: Request) -> SLAMonitor:
    return request.app.state.sla_monitor


# ========== Visits ==========

@visits_router.post(
    "",
    response_model=VisitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a visit",
    responses={
        201: {"description": "Visit scheduled"},
        422: {"description": "Empty or inverted visit window"}
    },
    openapi_extra={"requestBody": {"content": {"application/json": {"example": VISIT_CREATE_EXAMPLE}}}}
)
async def create_visit(
    payload: VisitCreateRequest,
    visit_service: VisitService = Depends(get_visit_service)
):
    visit = await visit_service.create(payload.to_domain())
    return VisitResponse.from_domain(visit)


@visits_router.get(
    "",
    response_model=VisitListResponse,
    summary="List visits",
    description="Visits with `is_late` / `exceeds_time_limit` recomputed for the current instant."
)
async def list_visits(
    query: VisitQuery = Depends(),
    visit_service: VisitService = Depends(get_visit_service)
):
    visits = await visit_service.list(
        status=query.status_enum,
        representative_id=query.representative_id,
        limit=query.limit,
        offset=query.offset
    )
    return VisitListResponse(
        visits=[VisitResponse.from_domain(v) for v in visits],
        total=len(visits)
    )


@visits_router.get(
    "/{visit_id}",
    response_model=VisitResponse,
    summary="Get a visit",
    responses={404: {"description": "Visit not found"}}
)
async def get_visit(visit_id: str, visit_service: VisitService = Depends(get_visit_service)):
    return VisitResponse.from_domain(await visit_service.get(visit_id))


@visits_router.post(
    "/{visit_id}/check-in",
    response_model=VisitResponse,
    summary="Representative arrived",
    responses={404: {"description": "Visit not found"}, 409: {"description": "Visit cannot be started"}}
)
async def check_in_visit(visit_id: str, visit_service: VisitService = Depends(get_visit_service)):
    return VisitResponse.from_domain(await visit_service.check_in(visit_id))


@visits_router.post(
    "/{visit_id}/check-out",
    response_model=VisitResponse,
    summary="Representative left",
    responses={404: {"description": "Visit not found"}, 409: {"description": "Visit is not in progress"}}
)
async def check_out_visit(visit_id: str, visit_service: VisitService = Depends(get_visit_service)):
    return VisitResponse.from_domain(await visit_service.check_out(visit_id))


@visits_router.post(
    "/{visit_id}/cancel",
    response_model=VisitResponse,
    summary="Cancel a visit",
    responses={404: {"description": "Visit not found"}, 409: {"description": "Visit already finished"}}
)
async def cancel_visit(visit_id: str, visit_service: VisitService = Depends(get_visit_service)):
    return VisitResponse.from_domain(await visit_service.cancel(visit_id))


# ========== Alerts ==========

@alerts_router.get(
    "",
    response_model=AlertListResponse,
    summary="List alerts",
    description="""
    `view=open` lists unresolved alerts, `view=unread` lists alerts nobody has
    read yet. Both can be narrowed by `severity` and `alert_type`.
    """
)
async def list_alerts(
    query: AlertQuery = Depends(),
    alert_engine: AlertEngine = Depends(get_alert_engine)
):
    filters = {"severity": query.severity_enum, "alert_type": query.alert_type_enum}
    if query.view == "unread":
        alerts = await alert_engine.list_unread(query.limit, **filters)
    else:
        alerts = await alert_engine.list_open(query.limit, **filters)
    return AlertListResponse(alerts=[AlertResponse.from_domain(a) for a in alerts], total=len(alerts))


@alerts_router.get("/stats", response_model=AlertStatsResponse, summary="Alert counts")
async def alert_stats(alert_engine: AlertEngine = Depends(get_alert_engine)):
    stats = await alert_engine.stats()
    return AlertStatsResponse(
        total=stats.total,
        open=stats.open,
        unread=stats.unread,
        resolved=stats.resolved,
        open_by_severity=stats.open_by_severity
    )


@alerts_router.get(
    "/{alert_id}",
    response_model=AlertResponse,
    summary="Get an alert",
    responses={404: {"description": "Alert not found"}}
)
async def get_alert(alert_id: str, alert_engine: AlertEngine = Depends(get_alert_engine)):
    return AlertResponse.from_domain(await alert_engine.get(alert_id))


@alerts_router.post(
    "/{alert_id}/read",
    response_model=AlertResponse,
    summary="Mark an alert as read",
    description="Idempotent: reading an alert twice keeps the first `read_at`."
)
async def mark_alert_read(alert_id: str, alert_engine: AlertEngine = Depends(get_alert_engine)):
    return AlertResponse.from_domain(await alert_engine.mark_read(alert_id))


@alerts_router.post(
    "/{alert_id}/unread",
    response_model=AlertResponse,
    summary="Mark an alert as unread",
    description="Puts the alert back on the unread list. Idempotent."
)
async def mark_alert_unread(alert_id: str, alert_engine: AlertEngine = Depends(get_alert_engine)):
    return AlertResponse.from_domain(await alert_engine.mark_unread(alert_id))


@alerts_router.post(
    "/{alert_id}/acknowledge",
    response_model=AlertResponse,
    summary="Acknowledge an alert",
    description="Records who took ownership. The first acknowledgement is kept."
)
async def acknowledge_alert(
    alert_id: str,
    payload: AcknowledgeAlertRequest,
    alert_engine: AlertEngine = Depends(get_alert_engine)
):
    return AlertResponse.from_domain(await alert_engine.acknowledge(alert_id, payload.acknowledged_by))


@alerts_router.post(
    "/{alert_id}/escalate",
    response_model=AlertResponse,
    summary="Escalate an alert now",
    description="Advances the alert one escalation level without waiting for the age thresholds.",
    responses={404: {"description": "Alert not found"}, 409: {"description": "Alert already resolved"}}
)
async def escalate_alert(
    alert_id: str,
    request: Request,
    alert_engine: AlertEngine = Depends(get_alert_engine)
):
    log = get_context_logger(__name__, getattr(request.state, "correlation_id", None))
    alert = await alert_engine.escalate(alert_id)
    log.info("Manual escalation requested", extra={"alert_id": alert_id, "escalation_count": alert.escalation_count})
    return AlertResponse.from_domain(alert)


@alerts_router.post(
    "/{alert_id}/resolve",
    response_model=AlertResponse,
    summary="Resolve an alert",
    description="Idempotent: resolving twice keeps the original resolver and time."
)
async def resolve_alert(
    alert_id: str,
    payload: ResolveAlertRequest,
    request: Request,
    alert_engine: AlertEngine = Depends(get_alert_engine)
):
    log = get_context_logger(__name__, getattr(request.state, "correlation_id", None))
    alert = await alert_engine.resolve(alert_id, payload.resolved_by)
    log.info("Alert resolve requested", extra={"alert_id": alert_id, "resolved_by": payload.resolved_by})
    return AlertResponse.from_domain(alert)


# ========== Monitor ==========

@monitor_router.post(
    "/sweep",
    response_model=SweepReportResponse,
    summary="Run a sweep now",
    description="""
    Runs one sweep outside the schedule. If a sweep of the same kind is
    already in flight the call returns immediately with `skipped: true`.
    """,
    responses={200: {"content": {"application/json": {"example": SWEEP_REPORT_EXAMPLE}}}}
)
async def trigger_sweep(
    kind: Literal["visits", "presence"] = Query("visits"),
    monitor: SLAMonitor = Depends(get_sla_monitor)
):
    if kind == "presence":
        report = await monitor.sweep_presence()
    else:
        report = await monitor.sweep()
    return SweepReportResponse(**report.to_dict())


@monitor_router.get("/status", response_model=MonitorStatusResponse, summary="Monitor status")
async def monitor_status(request: Request, monitor: SLAMonitor = Depends(get_sla_monitor)):
    scheduler = getattr(request.app.state, "monitor_scheduler", None)
    return MonitorStatusResponse(
        scheduler_running=bool(scheduler and scheduler.is_running),
        sweep_in_flight=monitor.is_sweeping,
        last_visit_sweep=SweepReportResponse(**monitor.last_visit_report.to_dict()) if monitor.last_visit_report else None,
        last_presence_sweep=SweepReportResponse(**monitor.last_presence_report.to_dict()) if monitor.last_presence_report else None,
    )
