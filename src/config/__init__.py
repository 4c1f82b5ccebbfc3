"""
Configuration Module
====================

Application settings and configuration management using Pydantic.

Runtime policy for the monitor (grace period, presence window, escalation
thresholds) lives in the YAML-backed ``MonitorConfig`` instead; see
``src.monitoring.domain.value_objects``.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="fieldops-monitor", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Storage ==========
    storage_backend: Literal["database", "memory"] = Field(
        default="database",
        description="Repository implementation: SQLAlchemy database or in-process memory"
    )
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/fieldops",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Monitor ==========
    monitor_enabled: bool = Field(default=True, description="Run the background sweeps")
    monitor_config_path: Path = Field(
        default=Path("monitor_config.yaml"),
        description="Path to monitor policy YAML file"
    )
    sweep_interval_seconds: int = Field(
        default=60,
        description="Seconds between visit sweeps"
    )
    presence_sweep_interval_seconds: int = Field(
        default=60,
        description="Seconds between presence sweeps"
    )
    store_call_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound for a single store call inside a sweep",
        gt=0
    )
    dispatch_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound for a single notification dispatch",
        gt=0
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for alert notifications"
    )
    slack_channel: str = Field(
        default="#field-visit-alerts",
        description="Slack channel for alert notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Enums ==========

class VisitStatus(str, Enum):
    """Visit lifecycle statuses."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    LATE = "late"
    NO_SHOW = "no_show"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_VISIT_STATUSES

    @property
    def is_awaiting_start(self) -> bool:
        """Scheduled, or its time-derived refinement ``late``."""
        return self in (VisitStatus.SCHEDULED, VisitStatus.LATE)


class VisitType(str, Enum):
    """Kinds of field visit."""
    DELIVERY = "delivery"
    PICKUP = "pickup"
    INSPECTION = "inspection"
    MAINTENANCE = "maintenance"
    MEETING = "meeting"


class Priority(str, Enum):
    """Visit priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class AlertType(str, Enum):
    """Alert types raised by the monitor."""
    LATE_ARRIVAL = "late_arrival"
    TIME_EXCEEDED = "time_exceeded"
    NO_SHOW = "no_show"
    PRESENCE_CHANGE = "presence_change"


class AlertSeverity(str, Enum):
    """Alert severities, ordered from least to most severe."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)

    def at_least(self, other: "AlertSeverity") -> "AlertSeverity":
        return self if self.rank >= other.rank else other


class EscalationLevel(str, Enum):
    """Escalation ladder for unresolved alerts."""
    INITIAL = "initial"
    ESCALATED = "escalated"
    CRITICAL = "critical"


class AttendanceStatus(str, Enum):
    """Explicitly-set attendance states of a representative."""
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    BREAK = "break"


# ========== Lists for validation ==========

TERMINAL_VISIT_STATUSES = frozenset({
    VisitStatus.COMPLETED, VisitStatus.CANCELLED, VisitStatus.NO_SHOW
})
ACTIVE_VISIT_STATUSES = [
    VisitStatus.SCHEDULED, VisitStatus.LATE, VisitStatus.IN_PROGRESS
]
SEVERITY_ORDER = [
    AlertSeverity.LOW, AlertSeverity.MEDIUM,
    AlertSeverity.HIGH, AlertSeverity.CRITICAL
]
ESCALATION_LADDER = [
    EscalationLevel.INITIAL, EscalationLevel.ESCALATED, EscalationLevel.CRITICAL
]
