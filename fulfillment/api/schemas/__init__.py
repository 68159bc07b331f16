"""Pydantic v2 schemas for the order/courier read and ops API."""
from fulfillment.api.schemas.couriers import OnlineCourierResponse
from fulfillment.api.schemas.orders import (
    CancelOrderRequest,
    DispatchResponse,
    EligibleCourierResponse,
    OrderResponse,
)

__all__ = [
    "OrderResponse",
    "EligibleCourierResponse",
    "CancelOrderRequest",
    "DispatchResponse",
    "OnlineCourierResponse",
]
