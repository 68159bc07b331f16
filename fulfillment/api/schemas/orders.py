"""Pydantic v2 schemas for the Orders API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class OrderResponse(BaseModel):
    order_id: str
    short_code: Optional[str] = None
    customer_phone: str
    courier_id: Optional[UUID] = None
    status: str
    items: List[Dict[str, Any]] = Field(default_factory=list)
    notes: Optional[str] = None
    pickup_address: Optional[str] = None
    pickup_latitude: Optional[float] = None
    pickup_longitude: Optional[float] = None
    delivery_address: Optional[str] = None
    delivery_latitude: Optional[float] = None
    delivery_longitude: Optional[float] = None
    total_amount: int = 0
    evidence_ref: Optional[str] = None
    offered_courier_ids: List[str] = Field(default_factory=list)
    last_offered_at: Optional[datetime] = None
    taken_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class EligibleCourierResponse(BaseModel):
    courier_id: UUID
    phone: str
    name: Optional[str] = None
    distance_km: float

    model_config = {"from_attributes": True}


class CancelOrderRequest(BaseModel):
    reason: str = Field(default="Cancelled by admin", min_length=1, max_length=500)
    notify_customer: bool = True


class DispatchResponse(BaseModel):
    order_id: str
    outcome: str
