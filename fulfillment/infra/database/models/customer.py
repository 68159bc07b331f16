"""Customer ORM model."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.infra.database.models.base import Base, TimestampMixin


class Customer(Base, TimestampMixin):
    """A person ordering over WhatsApp, keyed by canonical phone number."""

    __tablename__ = "customers"

    phone: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Last shared location; doubles as the default delivery point
    address_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    last_order_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
