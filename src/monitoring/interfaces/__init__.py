"""
Monitoring Interfaces Layer
===========================

Interface adapters (controllers) for the monitoring module.

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from src.monitoring.interfaces.controllers import visits_router, alerts_router, monitor_router

__all__ = ["visits_router", "alerts_router", "monitor_router"]
