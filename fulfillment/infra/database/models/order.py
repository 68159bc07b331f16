"""Order ORM model."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.infra.database.models.base import Base, TimestampMixin


class Order(Base, TimestampMixin):
    """A delivery request from draft through completion."""

    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_status_last_offered_at", "status", "last_offered_at"),
        Index("ix_orders_customer_phone_status", "customer_phone", "status"),
    )

    # ORD-<epoch ms>-<3 digits>
    order_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    short_code: Mapped[Optional[str]] = mapped_column(String(8), nullable=True, unique=True)

    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    courier_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("couriers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    raw_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # [{"item": str, "qty": int, "note": str}]
    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    pickup_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pickup_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pickup_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivery_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    total_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    evidence_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Offer bookkeeping; always reassign the list so JSONB changes are flushed
    offered_courier_ids: Mapped[List[str]] = mapped_column(JSONB, nullable=False, default=list)
    last_offered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="DRAFT")
    taken_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def has_pickup_coordinates(self) -> bool:
        return self.pickup_latitude is not None and self.pickup_longitude is not None

    @property
    def has_delivery_coordinates(self) -> bool:
        return self.delivery_latitude is not None and self.delivery_longitude is not None
