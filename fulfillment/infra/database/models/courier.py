"""Courier ORM model."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.infra.database.models.base import Base, TimestampMixin, _uuid_pk


class Courier(Base, TimestampMixin):
    """A delivery rider. ``status`` is one of CourierStatus."""

    __tablename__ = "couriers"

    id: Mapped[uuid.UUID] = _uuid_pk()
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)

    # WhatsApp sender id bound by #LOGIN (may differ from phone for linked devices)
    device_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    shift_code: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="OFFLINE", index=True)
    # OFFLINE | IDLE | BUSY | SUSPEND
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    current_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    current_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    last_active_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_job_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    current_order_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    @property
    def has_coordinates(self) -> bool:
        return self.current_latitude is not None and self.current_longitude is not None
