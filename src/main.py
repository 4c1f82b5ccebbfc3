"""
FieldOps Monitor - Main Application
===================================

Field visit SLA monitoring for sales and service representatives.

Modules:
- Monitoring: visit state machine, SLA sweeps, alert engine
- Presence: location pings, online/offline, attendance

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, config watcher, Slack, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

# Configuration
from src.config import Settings, settings as default_settings

# Infrastructure
from src.infrastructure.database import (
    close_database, create_tables, get_session_maker, init_database,
)

# Monitoring Module
from src.monitoring.application import AlertEngine, SLAMonitor, VisitService
from src.monitoring.infrastructure import (
    InMemoryAlertRepository, InMemoryVisitRepository, LoggingDispatcher,
    MonitorConfigManager, MonitorScheduler, SlackDispatcher,
    SQLAlchemyAlertRepository, SQLAlchemyVisitRepository,
)
from src.monitoring.interfaces import alerts_router, monitor_router, visits_router

# Presence Module
from src.presence.application import PresenceTracker
from src.presence.infrastructure import (
    InMemoryAttendanceRepository, InMemoryPresenceRepository,
    SQLAlchemyAttendanceRepository, SQLAlchemyPresenceRepository,
)
from src.presence.interfaces import presence_router

# Shared
from src.shared.api.middleware import (
    CorrelationIDMiddleware, LoggingMiddleware, register_exception_handlers,
)
from src.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def _build_repositories(app_settings: Settings) -> dict:
    """Pick repository implementations for the configured storage backend."""
    if app_settings.storage_backend == "memory":
        logger.info("Using in-memory storage")
        return {
            "visits": InMemoryVisitRepository(),
            "alerts": InMemoryAlertRepository(),
            "presence": InMemoryPresenceRepository(),
            "attendance": InMemoryAttendanceRepository(),
        }

    logger.info("Initializing database")
    engine = init_database(app_settings.database_url)
    # Development convenience; production should use migrations.
    # Sweeps log and retry every tick until the database comes up.
    try:
        await create_tables(engine)
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    session_maker = get_session_maker()
    return {
        "visits": SQLAlchemyVisitRepository(session_maker),
        "alerts": SQLAlchemyAlertRepository(session_maker),
        "presence": SQLAlchemyPresenceRepository(session_maker),
        "attendance": SQLAlchemyAttendanceRepository(session_maker),
    }


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Application factory."""
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        Application lifespan manager.

        STARTUP:
        1. Setup structured logging
        2. Load monitor policy (invalid policy aborts startup)
        3. Build repositories for the storage backend
        4. Wire alert engine, visit service, presence tracker, monitor
        5. Start the sweep scheduler

        SHUTDOWN:
        1. Stop scheduler
        2. Stop config watcher
        3. Close dispatcher and database connections
        """
        # === STARTUP ===
        setup_logging(app_settings.log_level, app_settings.environment)
        logger.info("Starting FieldOps Monitor", extra={
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "storage_backend": app_settings.storage_backend
        })

        logger.info("Loading monitor configuration")
        config_manager = MonitorConfigManager()
        config_manager.load(app_settings.monitor_config_path)
        config_manager.start_watching()

        repositories = await _build_repositories(app_settings)

        if app_settings.slack_webhook_url:
            dispatcher = SlackDispatcher(
                app_settings.slack_webhook_url,
                channel=app_settings.slack_channel,
                timeout_seconds=app_settings.slack_timeout_seconds
            )
        else:
            logger.info("Slack webhook URL not configured, alerts will only be logged")
            dispatcher = LoggingDispatcher()

        alert_engine = AlertEngine(
            repositories["alerts"],
            config_manager,
            dispatcher=dispatcher,
            call_timeout=app_settings.store_call_timeout_seconds,
            dispatch_timeout=app_settings.dispatch_timeout_seconds
        )
        presence_tracker = PresenceTracker(
            repositories["presence"],
            repositories["attendance"],
            online_window=lambda: config_manager.config.online_window
        )
        sla_monitor = SLAMonitor(
            repositories["visits"],
            alert_engine,
            config_manager,
            presence_tracker=presence_tracker,
            call_timeout=app_settings.store_call_timeout_seconds
        )
        scheduler = MonitorScheduler(
            sweep_interval_seconds=app_settings.sweep_interval_seconds,
            presence_interval_seconds=app_settings.presence_sweep_interval_seconds
        )

        # Store services in app state for dependency injection
        app.state.settings = app_settings
        app.state.config_manager = config_manager
        app.state.alert_engine = alert_engine
        app.state.visit_service = VisitService(repositories["visits"], config_manager)
        app.state.presence_tracker = presence_tracker
        app.state.sla_monitor = sla_monitor
        app.state.monitor_scheduler = scheduler

        if app_settings.monitor_enabled:
            await scheduler.start(sla_monitor.sweep, sla_monitor.sweep_presence)
        else:
            logger.info("Background sweeps disabled")

        logger.info("FieldOps Monitor started successfully")

        try:
            yield  # Application runs here
        finally:
            # === SHUTDOWN ===
            logger.info("Shutting down FieldOps Monitor")
            await scheduler.stop()
            config_manager.stop_watching()
            await dispatcher.close()
            if app_settings.storage_backend == "database":
                await close_database()
            logger.info("FieldOps Monitor shutdown complete")

    app = FastAPI(
        title="FieldOps Monitor API",
        description="""
        ## Field Visit SLA Monitoring

        - `/visits` - schedule visits, check in, check out, cancel
        - `/alerts` - late arrival, time exceeded, no-show and presence alerts
        - `/presence` - location pings, online status, attendance
        - `/monitor` - trigger a sweep, inspect the last sweep reports

        A background job re-evaluates every active visit each minute, raises
        one alert per condition when it starts to hold, and escalates alerts
        that stay open past the configured thresholds.
        """,
        version=app_settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    register_exception_handlers(app)

    # === Include Module Routers ===
    app.include_router(visits_router)
    app.include_router(alerts_router)
    app.include_router(monitor_router)
    app.include_router(presence_router)

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "storage": "database",
                            "monitor_config": "loaded",
                            "scheduler": "running",
                            "sweep_in_flight": False
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        scheduler = getattr(request.app.state, "monitor_scheduler", None)
        monitor = getattr(request.app.state, "sla_monitor", None)
        return {
            "status": "healthy",
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "checks": {
                "storage": app_settings.storage_backend,
                "monitor_config": "loaded" if hasattr(request.app.state, "config_manager") else "missing",
                "scheduler": "running" if scheduler and scheduler.is_running else "stopped",
                "sweep_in_flight": bool(monitor and monitor.is_sweeping)
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug
    )
