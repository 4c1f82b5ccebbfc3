"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries. The monitor isolates per-visit
failures by catching them; HTTP handlers map them to status codes.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations (e.g. illegal transitions)."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class TransientStoreException(RepositoryException):
    """
    Store or network failure that is expected to clear on its own.

    Sweeps skip the affected item and pick it up again on the next tick.
    """


class DuplicateAlertException(RepositoryException):
    """An open alert already exists for the same scope and alert type."""

    def __init__(self, scope_key: str, alert_type: str):
        self.scope_key = scope_key
        self.alert_type = alert_type
        super().__init__(
            f"Open {alert_type} alert already exists for {scope_key}",
            {"scope_key": scope_key, "alert_type": alert_type}
        )


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class FatalConfigException(ConfigurationException):
    """Invalid configuration detected at startup; the monitor refuses to start."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class DispatchException(ExternalServiceException):
    """Notification delivery failed. Alert state is unaffected."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Notification Dispatcher", message, details)
