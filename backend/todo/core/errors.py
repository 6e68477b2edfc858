"""Error hierarchy for the Todo backend.

Every exception raised inside the backend derives from ``TodoError`` and
carries a machine readable code, an HTTP status hint and structured details.
These exceptions never cross a capability contract boundary: dispatch
strategies classify them into ``CapabilityError`` values first.
"""

import logging
import time
import uuid
from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """Error severity levels for monitoring and alerting."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TodoError(Exception):
    """
    Base exception for all Todo backend errors.

    Carries an error id, severity, retry hint and sanitized details, and logs
    itself on construction.
    """

    default_code: str = "ERROR"
    status_code: int = 500
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    retryable: bool = False

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message
        self.code = kwargs.get("code") or self.default_code
        self.details = kwargs.get("details") or {}
        self.error_id = str(uuid.uuid4())
        self.timestamp = time.time()
        self.user_message = kwargs.get("user_message") or message
        self.context = kwargs.get("context") or {}
        if kwargs.get("cause") is not None:
            self.__cause__ = kwargs["cause"]

        self._log_error()

    def _log_error(self) -> None:
        """Log error with structured data."""
        logger = logging.getLogger(f"todo.errors.{self.__class__.__name__}")
        log_data = {
            "error_id": self.error_id,
            "code": self.code,
            "error_message": self.message,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "details": self._sanitize(self.details),
        }

        if self.severity == ErrorSeverity.CRITICAL:
            logger.critical("Critical error occurred", extra=log_data)
        elif self.severity == ErrorSeverity.HIGH:
            logger.error("High severity error", extra=log_data)
        elif self.severity == ErrorSeverity.MEDIUM:
            logger.warning("Medium severity error", extra=log_data)
        else:
            logger.info("Low severity error", extra=log_data)

    def _sanitize(self, details: dict) -> dict:
        """Mask values whose keys look like credentials."""
        sensitive_keys = {"password", "token", "secret", "key", "authorization"}
        sanitized = {}
        for key, value in details.items():
            if any(sensitive in key.lower() for sensitive in sensitive_keys):
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize(value)
            else:
                sanitized[key] = value
        return sanitized

    def to_dict(self, include_internal: bool = False) -> dict[str, Any]:
        """
        Serialize error for API responses and logs.

        Args:
            include_internal: Include error id, severity and the internal message
        """
        data: dict[str, Any] = {
            "error": self.code,
            "message": self.user_message,
        }
        if self.details:
            data["details"] = self._sanitize(self.details)
        if self.retryable:
            data["retryable"] = True
        if include_internal:
            data.update(
                {
                    "error_id": self.error_id,
                    "severity": self.severity.value,
                    "internal_message": self.message,
                }
            )
        return data

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class DomainError(TodoError):
    """Base class for domain errors."""

    default_code = "DOMAIN_ERROR"
    status_code = 400


class ApplicationError(TodoError):
    """Base class for application layer errors."""

    default_code = "APPLICATION_ERROR"
    status_code = 400


class InfrastructureError(TodoError):
    """Base class for infrastructure errors."""

    default_code = "INFRASTRUCTURE_ERROR"
    status_code = 500
    severity = ErrorSeverity.HIGH
    retryable = True


class ValidationError(ApplicationError):
    """Invalid input, optionally tied to a single field."""

    default_code = "VALIDATION_ERROR"
    status_code = 400
    severity = ErrorSeverity.LOW

    def __init__(self, message: str, field: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.field = field
        if field:
            self.details["field"] = field


class NotFoundError(ApplicationError):
    """Resource not found error."""

    default_code = "NOT_FOUND"
    status_code = 404
    severity = ErrorSeverity.LOW

    def __init__(self, resource: str, identifier: Any, **kwargs: Any) -> None:
        message = f"{resource} not found: {identifier}"
        user_message = f"The requested {resource.lower()} was not found"
        super().__init__(message, user_message=user_message, **kwargs)
        self.resource = resource
        self.identifier = str(identifier)
        self.details.update({"resource": resource, "identifier": self.identifier})


class ConfigurationError(InfrastructureError):
    """Invalid or missing configuration. Fatal at startup."""

    default_code = "CONFIGURATION_ERROR"
    status_code = 500
    severity = ErrorSeverity.CRITICAL
    retryable = False

    def __init__(self, message: str, config_key: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if config_key:
            self.details["config_key"] = config_key


class ExternalServiceError(InfrastructureError):
    """A dependency outside the process failed."""

    default_code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502

    def __init__(
        self,
        service: str,
        message: str,
        service_status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            f"{service} error: {message}",
            user_message="External service temporarily unavailable",
            **kwargs,
        )
        self.details.update(
            {"service": service, "service_status_code": service_status_code}
        )


class ServiceUnavailableError(InfrastructureError):
    """A dependency is temporarily unavailable."""

    default_code = "SERVICE_UNAVAILABLE"
    status_code = 503


__all__ = [
    "ApplicationError",
    "ConfigurationError",
    "DomainError",
    "ErrorSeverity",
    "ExternalServiceError",
    "InfrastructureError",
    "NotFoundError",
    "ServiceUnavailableError",
    "TodoError",
    "ValidationError",
]
