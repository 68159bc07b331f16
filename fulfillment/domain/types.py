"""Core data structures shared by the order, dispatch and draft layers."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from fulfillment.core.exceptions import InvalidTransitionError


class OrderStatus(str, Enum):
    """Order lifecycle. COMPLETED and CANCELLED are terminal."""
    DRAFT = "DRAFT"
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    LOOKING_FOR_DRIVER = "LOOKING_FOR_DRIVER"
    ON_PROCESS = "ON_PROCESS"
    BILL_VALIDATION = "BILL_VALIDATION"
    BILL_SENT = "BILL_SENT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "OrderStatus") -> bool:
        return target in _TRANSITIONS[self]


class CourierStatus(str, Enum):
    OFFLINE = "OFFLINE"
    IDLE = "IDLE"
    BUSY = "BUSY"
    SUSPEND = "SUSPEND"


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED}
)

DRAFT_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.DRAFT, OrderStatus.PENDING_CONFIRMATION}
)

ASSIGNED_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.ON_PROCESS, OrderStatus.BILL_VALIDATION, OrderStatus.BILL_SENT}
)
"""Non-terminal states in which a courier holds the order."""

ACTIVE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.LOOKING_FOR_DRIVER} | ASSIGNED_STATUSES
)

AUTO_CANCEL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    DRAFT_STATUSES | {OrderStatus.LOOKING_FOR_DRIVER}
)

COURIER_HELD_STATUSES: FrozenSet[OrderStatus] = frozenset(
    ASSIGNED_STATUSES | {OrderStatus.COMPLETED}
)
"""States in which ``courier_id`` is set."""

_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.DRAFT: frozenset({
        OrderStatus.PENDING_CONFIRMATION,
        OrderStatus.LOOKING_FOR_DRIVER,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.PENDING_CONFIRMATION: frozenset({
        OrderStatus.DRAFT,
        OrderStatus.LOOKING_FOR_DRIVER,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.LOOKING_FOR_DRIVER: frozenset({
        OrderStatus.ON_PROCESS,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.ON_PROCESS: frozenset({
        OrderStatus.BILL_VALIDATION,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.BILL_VALIDATION: frozenset({
        OrderStatus.BILL_SENT,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.BILL_SENT: frozenset({
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def ensure_transition(current: "OrderStatus | str", target: OrderStatus) -> OrderStatus:
    """Return *target* if the move is allowed, else raise InvalidTransitionError."""
    current = OrderStatus(current)
    if not current.can_transition_to(target):
        raise InvalidTransitionError(
            f"Order cannot move from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )
    return target


class Intent(str, Enum):
    """Customer message intents produced by the intent parser."""
    ORDER_INCOMPLETE = "ORDER_INCOMPLETE"
    ORDER_COMPLETE = "ORDER_COMPLETE"
    CONFIRM_FINAL = "CONFIRM_FINAL"
    CHECK_STATUS = "CHECK_STATUS"
    CANCEL = "CANCEL"
    CHITCHAT = "CHITCHAT"

    @classmethod
    def parse(cls, raw: Any) -> "Intent":
        try:
            return cls(str(raw or "").strip().upper())
        except ValueError:
            return cls.CHITCHAT


@dataclass
class ParsedMessage:
    """Output contract of the intent parser."""

    intent: Intent
    fields: Dict[str, Any] = field(default_factory=dict)
    """Subset of: items (list of {item, qty, note}), pickup_location, delivery_address, notes."""

    reply_text: str = ""


class DispatchOutcome(str, Enum):
    """What a single find-courier attempt did."""
    OFFERED = "offered"
    OFFER_PENDING = "offer_pending"
    NO_COURIER = "no_courier"
    NO_PICKUP_COORDINATES = "no_pickup_coordinates"
    NOT_DISPATCHABLE = "not_dispatchable"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RankedCourier:
    """An eligible courier and its straight-line distance to the pickup point."""

    courier_id: Any
    phone: str
    name: Optional[str]
    distance_km: float


def normalize_items(raw: Any) -> List[Dict[str, Any]]:
    """Coerce parser/admin item payloads into ``[{"item", "qty", "note"}]``."""
    if not isinstance(raw, list):
        return []
    items: List[Dict[str, Any]] = []
    for entry in raw:
        if isinstance(entry, str):
            entry = {"item": entry}
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("item") or entry.get("name") or "").strip()
        if not name:
            continue
        try:
            qty = int(entry.get("qty") or entry.get("quantity") or 1)
        except (TypeError, ValueError):
            qty = 1
        items.append({
            "item": name,
            "qty": max(qty, 1),
            "note": str(entry.get("note") or "").strip(),
        })
    return items
