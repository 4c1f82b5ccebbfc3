"""
Monitoring Domain Layer
=======================

Domain layer for the visit monitoring module.

Contains:
- Entities: Core business objects with identity (Visit, Alert)
- Value Objects: Immutable objects defined by attributes (MonitorConfig, VisitEvaluation)
- Domain Services: Stateless business logic (VisitStateMachine, EscalationPolicy)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from src.monitoring.domain.entities import Visit, Alert, AlertScope
from src.monitoring.domain.value_objects import (
    MonitorConfig,
    VisitEvaluation,
    VisitStateMachine,
    EscalationPolicy,
    DEFAULT_ALERT_SEVERITIES,
)

__all__ = [
    # Entities
    "Visit",
    "Alert",
    "AlertScope",
    # Value Objects & Services
    "MonitorConfig",
    "VisitEvaluation",
    "VisitStateMachine",
    "EscalationPolicy",
    "DEFAULT_ALERT_SEVERITIES",
]
