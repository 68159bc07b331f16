"""OrderService: the order lifecycle store.

Every mutating method runs as its own transaction and commits before
returning, so outbound messages sent afterwards never hold row locks and a
failed send cannot roll back a recorded state change.
"""
from __future__ import annotations

import logging
import random
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import (
    ConflictError,
    CourierUnavailableError,
    MissingFieldError,
    NotFoundError,
    OrderAlreadyTakenError,
    ValidationError,
)
from fulfillment.domain.drafts import MIN_DELIVERY_LEN, MIN_PICKUP_LEN
from fulfillment.domain.geo import is_valid_coordinate
from fulfillment.domain.types import (
    ASSIGNED_STATUSES,
    DRAFT_STATUSES,
    CourierStatus,
    OrderStatus,
    ensure_transition,
    normalize_items,
)
from fulfillment.infra.database.models import Order
from fulfillment.infra.database.repositories import CourierRepository, OrderRepository
from fulfillment.services.deps import utcnow
from fulfillment.utils.phones import normalize_phone

logger = logging.getLogger(__name__)

SHORT_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_SHORT_CODE_LEN = 4
_SHORT_CODE_ATTEMPTS = 5

# Draft keys an admin or the draft assembler may write directly
_DRAFT_COLUMNS = (
    "raw_message",
    "notes",
    "pickup_address",
    "delivery_address",
    "pickup_latitude",
    "pickup_longitude",
    "delivery_latitude",
    "delivery_longitude",
)


def generate_order_id(now: datetime) -> str:
    return f"ORD-{int(now.timestamp() * 1000)}-{random.randint(0, 999):03d}"


def missing_order_fields(order: Order) -> List[str]:
    missing: List[str] = []
    if not order.items:
        missing.append("items")
    if len((order.pickup_address or "").strip()) < MIN_PICKUP_LEN:
        missing.append("pickup_address")
    if len((order.delivery_address or "").strip()) < MIN_DELIVERY_LEN:
        missing.append("delivery_address")
    return missing


class OrderService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Callable[[], datetime] = utcnow,
        country_code: str = "62",
    ) -> None:
        self._session = session
        self._orders = OrderRepository(session)
        self._couriers = CourierRepository(session)
        self._clock = clock
        self._country_code = country_code

    # ── reads ────────────────────────────────────────────────────────────────

    async def require_order(self, order_id: str) -> Order:
        order = await self._orders.get_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
        return order

    async def find_by_reference(self, reference: str) -> Optional[Order]:
        """Look up by order id, falling back to the short code."""
        reference = (reference or "").strip()
        if not reference:
            return None
        order = await self._orders.get_by_id(reference)
        if order is None:
            order = await self._orders.get_by_short_code(reference)
        return order

    async def list_orders(
        self,
        *,
        status: Optional[str] = None,
        customer_phone: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Order]:
        return await self._orders.list_all(
            status=status, customer_phone=customer_phone, skip=skip, limit=limit
        )

    async def latest_draft_for(self, customer_phone: str) -> Optional[Order]:
        return await self._orders.get_latest_for_customer(
            customer_phone, [s.value for s in DRAFT_STATUSES]
        )

    async def active_order_for(self, customer_phone: str) -> Optional[Order]:
        statuses = [OrderStatus.LOOKING_FOR_DRIVER.value] + [s.value for s in ASSIGNED_STATUSES]
        return await self._orders.get_latest_for_customer(customer_phone, statuses)

    async def active_order_for_courier(self, courier_id: uuid.UUID) -> Optional[Order]:
        return await self._orders.get_active_for_courier(
            courier_id, [s.value for s in ASSIGNED_STATUSES]
        )

    # ── drafting ─────────────────────────────────────────────────────────────

    async def _new_short_code(self) -> str:
        for _ in range(_SHORT_CODE_ATTEMPTS):
            code = "".join(random.choice(SHORT_CODE_ALPHABET) for _ in range(_SHORT_CODE_LEN))
            if not await self._orders.short_code_exists(code):
                return code
        return f"K{random.randint(0, 9999):04d}"

    async def create_draft(self, customer_phone: str, fields: Mapping[str, Any]) -> Order:
        phone = normalize_phone(customer_phone, country_code=self._country_code)
        if phone is None:
            raise ValidationError(
                f"Invalid customer phone: {customer_phone!r}", details={"phone": customer_phone}
            )
        now = self._clock()
        data: Dict[str, Any] = {
            "order_id": generate_order_id(now),
            "short_code": await self._new_short_code(),
            "customer_phone": phone,
            "items": normalize_items(fields.get("items")),
            "status": OrderStatus.DRAFT.value,
            "total_amount": 0,
            "offered_courier_ids": [],
        }
        for key in _DRAFT_COLUMNS:
            if fields.get(key) is not None:
                data[key] = fields[key]
        order = await self._orders.create(data)
        await self._session.commit()
        logger.info(
            "OrderService: draft %s created for %s", order.order_id, phone,
            extra={"order_id": order.order_id, "phone": phone},
        )
        return order

    async def update_draft(self, order_id: str, fields: Mapping[str, Any]) -> Order:
        """Overwrite the non-empty *fields* on a DRAFT / PENDING_CONFIRMATION order."""
        order = await self.require_order(order_id)
        if OrderStatus(order.status) not in DRAFT_STATUSES:
            raise ConflictError(
                f"Order {order_id} is {order.status}; only drafts can be edited",
                details={"order_id": order_id, "status": order.status},
            )
        items = normalize_items(fields.get("items"))
        if items:
            order.items = items
        for key in _DRAFT_COLUMNS:
            value = fields.get(key)
            if value is not None and value != "":
                setattr(order, key, value)
        if OrderStatus(order.status) is OrderStatus.PENDING_CONFIRMATION and missing_order_fields(order):
            order.status = ensure_transition(order.status, OrderStatus.DRAFT).value
        await self._session.flush()
        await self._session.commit()
        return order

    async def mark_pending_confirmation(self, order_id: str) -> Order:
        order = await self.require_order(order_id)
        if OrderStatus(order.status) is OrderStatus.PENDING_CONFIRMATION:
            return order
        missing = missing_order_fields(order)
        if missing:
            raise MissingFieldError(missing, details={"order_id": order_id})
        order.status = ensure_transition(order.status, OrderStatus.PENDING_CONFIRMATION).value
        await self._session.commit()
        return order

    async def confirm(
        self,
        order_id: str,
        *,
        pickup_coordinates: Optional[tuple[float, float]] = None,
        delivery_coordinates: Optional[tuple[float, float]] = None,
    ) -> Order:
        """Validate the draft and move it to LOOKING_FOR_DRIVER.

        Coordinates are optional here; dispatch holds orders without pickup
        coordinates.
        """
        order = await self._orders.get_for_update(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
        missing = missing_order_fields(order)
        if missing:
            raise MissingFieldError(missing, details={"order_id": order_id})
        order.status = ensure_transition(order.status, OrderStatus.LOOKING_FOR_DRIVER).value
        if pickup_coordinates is not None:
            order.pickup_latitude, order.pickup_longitude = pickup_coordinates
        if delivery_coordinates is not None:
            order.delivery_latitude, order.delivery_longitude = delivery_coordinates
        order.offered_courier_ids = []
        order.last_offered_at = None
        await self._session.commit()
        logger.info("OrderService: order %s confirmed", order_id, extra={"order_id": order_id})
        return order

    async def set_pickup_coordinates(self, order_id: str, latitude: float, longitude: float) -> Order:
        if not is_valid_coordinate(latitude, longitude):
            raise ValidationError(
                "Pickup coordinates out of range",
                details={"latitude": latitude, "longitude": longitude},
            )
        order = await self.require_order(order_id)
        if OrderStatus(order.status).is_terminal:
            raise ConflictError(
                f"Order {order_id} is {order.status}",
                details={"order_id": order_id, "status": order.status},
            )
        order.pickup_latitude = latitude
        order.pickup_longitude = longitude
        await self._session.commit()
        return order

    # ── dispatch bookkeeping ─────────────────────────────────────────────────

    async def record_offer(self, order_id: str, courier_id: uuid.UUID, *, reset: bool = False) -> Order:
        """Append *courier_id* to the offer list and stamp ``last_offered_at``.

        ``reset`` starts a new offer round, dropping earlier offers first.
        """
        order = await self.require_order(order_id)
        offered = [] if reset else list(order.offered_courier_ids or [])
        offered.append(str(courier_id))
        order.offered_courier_ids = offered
        order.last_offered_at = self._clock()
        await self._session.commit()
        return order

    # ── assignment ───────────────────────────────────────────────────────────

    async def assign(self, order_id: str, courier_id: uuid.UUID) -> Order:
        """Give the order to *courier_id*.

        Locks the order row, then the courier row, and claims the order with a
        status compare-and-swap. Losing a race raises OrderAlreadyTakenError.
        """
        order = await self._orders.get_for_update(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
        if OrderStatus(order.status) is not OrderStatus.LOOKING_FOR_DRIVER:
            raise OrderAlreadyTakenError(
                f"Order {order_id} is no longer looking for a courier",
                details={"order_id": order_id, "status": order.status},
            )

        courier = await self._couriers.get_for_update(courier_id)
        if courier is None:
            raise NotFoundError(f"Courier {courier_id} not found", details={"courier_id": str(courier_id)})
        if courier.status != CourierStatus.IDLE.value or not courier.is_active:
            raise CourierUnavailableError(
                f"Courier {courier_id} is {courier.status}",
                details={"courier_id": str(courier_id), "status": courier.status},
            )

        now = self._clock()
        claimed = await self._orders.claim_for_courier(
            order_id,
            courier.id,
            expected_status=OrderStatus.LOOKING_FOR_DRIVER.value,
            new_status=OrderStatus.ON_PROCESS.value,
            taken_at=now,
        )
        if not claimed:
            raise OrderAlreadyTakenError(
                f"Order {order_id} was taken by another courier", details={"order_id": order_id}
            )
        order.status = OrderStatus.ON_PROCESS.value
        order.courier_id = courier.id
        order.taken_at = now

        courier.status = CourierStatus.BUSY.value
        courier.current_order_id = order_id
        courier.last_job_time = now
        await self._session.commit()
        logger.info(
            "OrderService: order %s assigned to courier %s", order_id, courier.id,
            extra={"order_id": order_id, "courier_id": str(courier.id)},
        )
        return order

    # ── billing ──────────────────────────────────────────────────────────────

    @staticmethod
    def _check_amount(amount: int) -> int:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ValidationError("Bill amount must be a non-negative integer", details={"amount": amount})
        return amount

    async def record_bill_draft(self, order_id: str, amount: int, evidence_ref: Optional[str]) -> Order:
        amount = self._check_amount(amount)
        order = await self.require_order(order_id)
        order.status = ensure_transition(order.status, OrderStatus.BILL_VALIDATION).value
        order.total_amount = amount
        order.evidence_ref = evidence_ref
        await self._session.commit()
        logger.info("OrderService: bill draft %d for %s", amount, order_id, extra={"order_id": order_id})
        return order

    async def revise_bill_amount(self, order_id: str, amount: int) -> Order:
        order = await self.require_order(order_id)
        if OrderStatus(order.status) is not OrderStatus.BILL_VALIDATION:
            raise ConflictError(
                f"Order {order_id} bill is not awaiting validation",
                details={"order_id": order_id, "status": order.status},
            )
        order.total_amount = self._check_amount(amount)
        await self._session.commit()
        return order

    async def finalize_bill(self, order_id: str) -> Optional[Order]:
        """BILL_VALIDATION -> BILL_SENT; None when the order is not awaiting validation."""
        order = await self._orders.get_by_id(order_id)
        if order is None or OrderStatus(order.status) is not OrderStatus.BILL_VALIDATION:
            return None
        order.status = OrderStatus.BILL_SENT.value
        await self._session.commit()
        logger.info("OrderService: bill for %s sent", order_id, extra={"order_id": order_id})
        return order

    # ── terminal transitions ─────────────────────────────────────────────────

    async def complete(self, order_id: str, courier_id: uuid.UUID) -> Order:
        order = await self._orders.get_for_update(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
        if order.courier_id is None or str(order.courier_id) != str(courier_id):
            raise ConflictError(
                f"Order {order_id} is not held by courier {courier_id}",
                details={"order_id": order_id, "courier_id": str(courier_id)},
            )
        now = self._clock()
        order.status = ensure_transition(order.status, OrderStatus.COMPLETED).value
        order.completed_at = now

        courier = await self._couriers.get_for_update(order.courier_id)
        if courier is not None:
            courier.status = CourierStatus.IDLE.value
            courier.current_order_id = None
            courier.last_job_time = now
        await self._session.commit()
        logger.info(
            "OrderService: order %s completed", order_id,
            extra={"order_id": order_id, "courier_id": str(courier_id)},
        )
        return order

    async def cancel(
        self,
        order_id: str,
        reason: str,
        *,
        only_if: Optional[Iterable[OrderStatus]] = None,
    ) -> Optional[Order]:
        """Cancel the order and release any held courier.

        Returns None when the order was already cancelled (or, with ``only_if``,
        has moved out of the given statuses), so callers notify the customer
        only for the call that actually cancelled it.
        """
        order = await self._orders.get_for_update(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
        if OrderStatus(order.status) is OrderStatus.CANCELLED:
            return None
        if only_if is not None and OrderStatus(order.status) not in set(only_if):
            await self._session.commit()
            return None
        order.status = ensure_transition(order.status, OrderStatus.CANCELLED).value
        order.cancel_reason = reason

        if order.courier_id is not None:
            courier = await self._couriers.get_for_update(order.courier_id)
            if courier is not None and courier.current_order_id in (None, order_id):
                courier.status = CourierStatus.IDLE.value
                courier.current_order_id = None
            order.courier_id = None
        await self._session.commit()
        logger.info(
            "OrderService: order %s cancelled (%s)", order_id, reason, extra={"order_id": order_id}
        )
        return order
