"""Per-customer draft session and its merge / completeness rules."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from fulfillment.domain.types import normalize_items

MIN_PICKUP_LEN = 3
MIN_DELIVERY_LEN = 4


@dataclass
class DraftSession:
    """Fields gathered over several customer messages, before the order is confirmed."""

    items: List[Dict[str, Any]] = field(default_factory=list)
    pickup: str = ""
    delivery_address: str = ""
    notes: str = ""

    has_coordinate: bool = False
    """Customer shared a delivery location during this session."""

    delivery_latitude: Optional[float] = None
    delivery_longitude: Optional[float] = None
    pickup_latitude: Optional[float] = None
    pickup_longitude: Optional[float] = None

    order_id: Optional[str] = None
    """The DRAFT order row mirroring this session, once created."""

    @property
    def has_pickup_coordinate(self) -> bool:
        return self.pickup_latitude is not None and self.pickup_longitude is not None

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "DraftSession":
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return cls()
        if not isinstance(data, dict):
            return cls()
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        session = cls(**known)
        session.items = normalize_items(session.items)
        return session

    def as_order_fields(self) -> Dict[str, Any]:
        return {
            "items": list(self.items),
            "pickup_address": self.pickup or None,
            "delivery_address": self.delivery_address or None,
            "notes": self.notes or None,
            "pickup_latitude": self.pickup_latitude,
            "pickup_longitude": self.pickup_longitude,
            "delivery_latitude": self.delivery_latitude,
            "delivery_longitude": self.delivery_longitude,
        }


def merge_draft(previous: DraftSession, fields: Mapping[str, Any]) -> DraftSession:
    """Layer parser output over *previous*.

    Non-empty text fields override field by field; a non-empty item list replaces the
    old list, an empty or missing one keeps it.
    """
    merged = replace(previous, items=list(previous.items))
    items = normalize_items(fields.get("items"))
    if items:
        merged.items = items
    pickup = str(fields.get("pickup_location") or fields.get("pickup") or "").strip()
    if pickup:
        merged.pickup = pickup
    delivery = str(fields.get("delivery_address") or "").strip()
    if delivery:
        merged.delivery_address = delivery
    notes = str(fields.get("notes") or "").strip()
    if notes:
        merged.notes = notes
    return merged


def missing_draft_fields(session: DraftSession, *, customer_has_coordinates: bool = False) -> List[str]:
    missing: List[str] = []
    if not session.items:
        missing.append("items")
    if len(session.pickup.strip()) < MIN_PICKUP_LEN:
        missing.append("pickup_address")
    if len(session.delivery_address.strip()) < MIN_DELIVERY_LEN:
        missing.append("delivery_address")
    if not (customer_has_coordinates or session.has_coordinate):
        missing.append("coordinates")
    return missing


def is_draft_complete(session: DraftSession, *, customer_has_coordinates: bool = False) -> bool:
    """Items, pickup text (> 2 chars), delivery text (> 3 chars) and a known delivery location."""
    return not missing_draft_fields(session, customer_has_coordinates=customer_has_coordinates)
