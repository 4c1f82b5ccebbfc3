"""
Monitoring Infrastructure Layer
===============================

Infrastructure implementations for visit monitoring:
- Models: SQLAlchemy ORM models
- Repositories: SQLAlchemy and in-memory data access
- External: config watcher, Slack dispatch, scheduler
"""

from src.monitoring.infrastructure.models import VisitModel, AlertModel
from src.monitoring.infrastructure.repositories import (
    SQLAlchemyVisitRepository,
    SQLAlchemyAlertRepository,
)
from src.monitoring.infrastructure.memory import (
    InMemoryVisitRepository,
    InMemoryAlertRepository,
)
from src.monitoring.infrastructure.external import (
    MonitorConfigManager,
    CircuitBreaker,
    CircuitState,
    SlackDispatcher,
    LoggingDispatcher,
    MonitorScheduler,
)

__all__ = [
    "VisitModel",
    "AlertModel",
    "SQLAlchemyVisitRepository",
    "SQLAlchemyAlertRepository",
    "InMemoryVisitRepository",
    "InMemoryAlertRepository",
    "MonitorConfigManager",
    "CircuitBreaker",
    "CircuitState",
    "SlackDispatcher",
    "LoggingDispatcher",
    "MonitorScheduler",
]
