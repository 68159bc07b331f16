"""
Concrete error types raised by the services, repositories and integrations.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional

from fulfillment.core.exceptions.base import ProjectError


class ConfigurationError(ProjectError):
    """Invalid or missing configuration."""

    default_code = "CONFIGURATION_ERROR"
    default_http_status = 500


class ValidationError(ProjectError):
    """Request or input validation failed."""

    default_code = "VALIDATION_ERROR"
    default_http_status = 400


class MissingFieldError(ValidationError):
    """An order cannot move forward because required fields are empty."""

    default_code = "MISSING_FIELD"
    default_http_status = 400

    def __init__(self, fields: Iterable[str], message: Optional[str] = None, **kwargs: Any) -> None:
        self.fields = list(fields)
        details = dict(kwargs.pop("details", None) or {})
        details["fields"] = self.fields
        super().__init__(
            message or f"Missing required order fields: {', '.join(self.fields)}",
            details=details,
            **kwargs,
        )


class NotFoundError(ProjectError):
    """Requested resource not found."""

    default_code = "NOT_FOUND"
    default_http_status = 404


class ConflictError(ProjectError):
    """Resource state conflict (e.g. concurrent update, stale status)."""

    default_code = "CONFLICT"
    default_http_status = 409


class InvalidTransitionError(ConflictError):
    """The requested order status change is not allowed from the current status."""

    default_code = "INVALID_TRANSITION"
    default_http_status = 409


class OrderAlreadyTakenError(ConflictError):
    """Another courier accepted the order first, or it stopped looking for a courier."""

    default_code = "ORDER_ALREADY_TAKEN"
    default_http_status = 409


class CourierUnavailableError(ConflictError):
    """The courier is not idle/active and cannot accept an order."""

    default_code = "COURIER_UNAVAILABLE"
    default_http_status = 409


class ExternalServiceError(ProjectError):
    """External service (LLM, messaging, storage) failed."""

    default_code = "EXTERNAL_SERVICE_ERROR"
    default_http_status = 502


class CacheError(ExternalServiceError):
    """Volatile cache (Redis) operation failed."""

    default_code = "CACHE_ERROR"
    default_http_status = 502
