"""Pydantic v2 schemas for the Couriers API."""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class OnlineCourierResponse(BaseModel):
    id: UUID
    name: Optional[str] = None
    phone: str
    shift_code: int
    status: str
    current_latitude: Optional[float] = None
    current_longitude: Optional[float] = None
    current_order_id: Optional[str] = None
    last_active_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
