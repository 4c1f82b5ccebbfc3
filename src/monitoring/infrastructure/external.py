"""
Monitoring External Service Integrations
========================================

External services for visit monitoring:
- YAML monitor policy with file watcher (hot reload)
- Slack webhook alert dispatch
- APScheduler for the periodic visit and presence sweeps
"""

import asyncio
import threading
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from src.config import AlertSeverity
from src.core import DispatchException, FatalConfigException
from src.monitoring.application.services import IMonitorConfigProvider, INotificationDispatcher
from src.monitoring.domain import Alert, MonitorConfig
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Monitor policy ==========

class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for monitor config file changes."""

    def __init__(self, config_manager: "MonitorConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"Config file changed: {event.src_path}")
            self.config_manager.reload()


class MonitorConfigManager(IMonitorConfigProvider):
    """
    Thread-safe monitor policy with hot-reload support.

    An invalid file at startup is fatal. An invalid file on reload is
    logged and the previous policy stays in force.
    """

    def __init__(self):
        self._config: Optional[MonitorConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> MonitorConfig:
        """
        Initial configuration load.

        Raises:
            FatalConfigException: the file exists but is not a valid policy
        """
        self._path = path
        try:
            config = self._load_from_file(path)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise FatalConfigException(
                f"Invalid monitor configuration in {path}",
                {"path": str(path), "error": str(e)}
            ) from e
        with self._lock:
            self._config = config
        logger.info(
            "Monitor configuration loaded",
            extra={"path": str(path), **config.model_dump(mode="json", exclude={"alert_severities"})}
        )
        return config

    def _load_from_file(self, path: Path) -> MonitorConfig:
        if not path.exists():
            logger.warning(f"Monitor config file not found: {path}, using defaults")
            return MonitorConfig()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return MonitorConfig(**data)

    def reload(self) -> bool:
        """Reload configuration from file, keeping the current one on failure."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            logger.error(
                "Failed to reload monitor config, keeping previous",
                extra={"path": str(self._path), "error": str(e)}
            )
            return False

        with self._lock:
            self._config = new_config
        logger.info("Monitor configuration reloaded successfully")
        return True

    def start_watching(self) -> None:
        """Start watching the configuration file for changes."""
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(f"Config file doesn't exist, skipping file watch: {self._path}")
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info(f"Started watching config file: {self._path}")
        except OSError as e:
            # inotify is unavailable in some containers
            logger.warning(f"File watching not available, using static config: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> MonitorConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("Monitor configuration not loaded")
            return self._config

    def get_config(self) -> MonitorConfig:
        return self.config


# ========== Dispatch ==========

class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


SEVERITY_EMOJI = {
    AlertSeverity.LOW: ":information_source:",
    AlertSeverity.MEDIUM: ":warning:",
    AlertSeverity.HIGH: ":rotating_light:",
    AlertSeverity.CRITICAL: ":red_circle:",
}


class SlackDispatcher(INotificationDispatcher):
    """
    Slack webhook dispatcher with circuit breaker and retry logic.

    Handles sending structured alerts to Slack with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling
    """

    def __init__(
        self,
        webhook_url: str,
        channel: str = "#field-visit-alerts",
        timeout_seconds: float = 10.0,
        max_retries: int = 3,
        backoff_base_seconds: float = 1.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url
        self._channel = channel
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._backoff_base = backoff_base_seconds
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def _build_message(self, alert: Alert) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        emoji = SEVERITY_EMOJI.get(alert.severity, ":warning:")
        title = alert.alert_type.value.replace("_", " ").title()

        fields = [
            {"type": "mrkdwn", "text": f"*Severity:*\n{alert.severity.value.title()}"},
            {"type": "mrkdwn", "text": f"*Escalation:*\n{alert.escalation_level.value.title()}"},
        ]
        if alert.representative_id:
            fields.append({"type": "mrkdwn", "text": f"*Representative:*\n{alert.representative_id}"})
        if alert.visit_id:
            fields.append({"type": "mrkdwn", "text": f"*Visit:*\n{alert.visit_id}"})

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"{emoji} {title}", "emoji": True}
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": alert.message}
            },
            {"type": "section", "fields": fields},
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": f"Alert {alert.id} | Raised: {alert.created_at.isoformat()}"}
                ]
            }
        ]

        return {"channel": self._channel, "text": alert.message, "blocks": blocks}

    async def send(self, alert: Alert) -> None:
        """
        Send alert to the Slack webhook.

        Raises:
            DispatchException: circuit open, or every attempt failed
        """
        if not self._circuit_breaker.allow_request():
            raise DispatchException("Circuit breaker open", {"alert_id": alert.id})

        message = self._build_message(alert)
        last_error = None

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Slack notification sent",
                        extra={"alert_id": alert.id, "alert_type": alert.alert_type.value}
                    )
                    return

                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                last_error = str(e) or type(e).__name__
                logger.warning(
                    "Slack notification attempt failed",
                    extra={"error": last_error, "attempt": attempt + 1, "alert_id": alert.id}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * 2 ** attempt)

        self._circuit_breaker.record_failure()
        raise DispatchException(
            f"Slack delivery failed after {self._max_retries} attempts",
            {"alert_id": alert.id, "error": last_error}
        )

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class LoggingDispatcher(INotificationDispatcher):
    """Fallback dispatcher used when no webhook is configured."""

    async def send(self, alert: Alert) -> None:
        logger.info(
            "Alert notification",
            extra={
                "alert_id": alert.id,
                "alert_type": alert.alert_type.value,
                "severity": alert.severity.value,
                "escalation_level": alert.escalation_level.value,
                "alert_message": alert.message
            }
        )


# ========== Scheduling ==========

class MonitorScheduler:
    """
    Wrapper for APScheduler running the visit and presence sweeps.

    Manages the lifecycle of the scheduler and jobs. ``max_instances=1``
    with ``coalesce`` means a slow sweep delays, never overlaps, the next.
    """

    def __init__(self, sweep_interval_seconds: float = 60, presence_interval_seconds: float = 60):
        self.sweep_interval_seconds = sweep_interval_seconds
        self.presence_interval_seconds = presence_interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(
        self,
        sweep_job: Callable[[], Awaitable[Any]],
        presence_job: Optional[Callable[[], Awaitable[Any]]] = None
    ) -> None:
        """
        Start the scheduler.

        Raises:
            FatalConfigException: an interval is not positive
        """
        if self._running:
            logger.warning("Monitor scheduler already running")
            return

        for name, value in (
            ("sweep_interval_seconds", self.sweep_interval_seconds),
            ("presence_sweep_interval_seconds", self.presence_interval_seconds),
        ):
            if value is None or value <= 0:
                raise FatalConfigException(f"{name} must be positive", {name: value})

        self._scheduler = AsyncIOScheduler()
        self._add_job(sweep_job, "visit_sweep", "Visit SLA Sweep", self.sweep_interval_seconds)
        if presence_job is not None:
            self._add_job(presence_job, "presence_sweep", "Presence Sweep", self.presence_interval_seconds)

        self._scheduler.start()
        self._running = True

        logger.info(
            "Monitor scheduler started",
            extra={
                "sweep_interval_seconds": self.sweep_interval_seconds,
                "presence_interval_seconds": self.presence_interval_seconds if presence_job else None
            }
        )

    def _add_job(self, func, job_id: str, name: str, seconds: float) -> None:
        self._scheduler.add_job(
            func,
            "interval",
            seconds=seconds,
            id=job_id,
            name=name,
            misfire_grace_time=max(int(seconds), 1),
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

    async def stop(self) -> None:
        """Stop the scheduler (safe to call when not running)."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Monitor scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
