"""
Fulfillment error types.

Usage:
    from fulfillment.core.exceptions import MissingFieldError, OrderAlreadyTakenError

    raise MissingFieldError(["pickup_address"])
    raise OrderAlreadyTakenError("Order ORD-1 already taken", details={"order_id": "ORD-1"})
"""
from fulfillment.core.exceptions.base import ProjectError
from fulfillment.core.exceptions.errors import (
    CacheError,
    ConfigurationError,
    ConflictError,
    CourierUnavailableError,
    ExternalServiceError,
    InvalidTransitionError,
    MissingFieldError,
    NotFoundError,
    OrderAlreadyTakenError,
    ValidationError,
)

__all__ = [
    "ProjectError",
    "ConfigurationError",
    "ValidationError",
    "MissingFieldError",
    "NotFoundError",
    "ConflictError",
    "InvalidTransitionError",
    "OrderAlreadyTakenError",
    "CourierUnavailableError",
    "ExternalServiceError",
    "CacheError",
]
