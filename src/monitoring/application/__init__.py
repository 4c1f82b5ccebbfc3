"""
Monitoring Application Layer
============================

Application layer for the visit monitoring module.

Contains:
- Services: AlertEngine, VisitService, SLAMonitor
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from src.monitoring.application.dto import (
    VisitCreateRequest,
    VisitQuery,
    ResolveAlertRequest,
    AcknowledgeAlertRequest,
    AlertQuery,
    VisitResponse,
    VisitListResponse,
    AlertResponse,
    AlertListResponse,
    AlertStatsResponse,
    SweepReportResponse,
    MonitorStatusResponse,
)
from src.monitoring.application.services import (
    AlertEngine,
    AlertStats,
    VisitService,
    SLAMonitor,
    SweepReport,
    IVisitRepository,
    IAlertRepository,
    INotificationDispatcher,
    IMonitorConfigProvider,
)

__all__ = [
    # DTOs
    "VisitCreateRequest",
    "VisitQuery",
    "ResolveAlertRequest",
    "AcknowledgeAlertRequest",
    "AlertQuery",
    "VisitResponse",
    "VisitListResponse",
    "AlertResponse",
    "AlertListResponse",
    "AlertStatsResponse",
    "SweepReportResponse",
    "MonitorStatusResponse",
    # Services
    "AlertEngine",
    "AlertStats",
    "VisitService",
    "SLAMonitor",
    "SweepReport",
    # Repository Interfaces
    "IVisitRepository",
    "IAlertRepository",
    "INotificationDispatcher",
    "IMonitorConfigProvider",
]
