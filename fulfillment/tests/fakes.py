"""In-memory stand-ins for the repositories, the DB session and the gateway.

``fake_repositories(store)`` swaps every repository class the services import
for a fake bound to one shared ``FakeStore``, so services run unmodified.
"""
from __future__ import annotations

import asyncio
import uuid
from contextlib import ExitStack, contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional
from unittest.mock import AsyncMock, MagicMock, patch

from fulfillment.config import DispatchConfig
from fulfillment.infra.cache import MemoryCache
from fulfillment.infra.database.models import Courier, Customer, Order
from fulfillment.services.deps import ServiceDeps

# 10:00 in Asia/Jakarta, inside shift 1 (06:00-14:00)
SHIFT_1_NOW = datetime(2024, 5, 1, 3, 0, tzinfo=timezone.utc)
# 16:00 in Asia/Jakarta, inside shift 2 (14:00-22:00)
SHIFT_2_NOW = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
# 23:30 in Asia/Jakarta, outside both shifts
NO_SHIFT_NOW = datetime(2024, 5, 1, 16, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = SHIFT_1_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeStore:
    """Rows shared by every fake repository of one test."""

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self.clock = clock or FakeClock()
        self.orders: Dict[str, Order] = {}
        self.couriers: Dict[uuid.UUID, Courier] = {}
        self.customers: Dict[str, Customer] = {}
        self._seq = 0

    def _stamp(self) -> datetime:
        # strictly increasing so "table order" is insertion order
        self._seq += 1
        return self.clock() + timedelta(microseconds=self._seq)

    def add_courier(self, **fields: Any) -> Courier:
        data: Dict[str, Any] = {
            "id": uuid.uuid4(),
            "name": "Kurir",
            "phone": f"62812000{len(self.couriers):04d}",
            "device_id": None,
            "shift_code": 1,
            "status": "IDLE",
            "is_active": True,
            "current_latitude": None,
            "current_longitude": None,
            "last_active_at": None,
            "last_job_time": None,
            "current_order_id": None,
        }
        data.update(fields)
        courier = Courier(**data)
        courier.created_at = courier.updated_at = self._stamp()
        self.couriers[courier.id] = courier
        return courier

    def add_customer(self, phone: str, **fields: Any) -> Customer:
        data: Dict[str, Any] = {
            "phone": phone,
            "name": None,
            "address_text": None,
            "latitude": None,
            "longitude": None,
            "last_order_date": None,
        }
        data.update(fields)
        customer = Customer(**data)
        customer.created_at = customer.updated_at = self._stamp()
        self.customers[phone] = customer
        return customer

    def add_order(self, order_id: str, **fields: Any) -> Order:
        data: Dict[str, Any] = {
            "order_id": order_id,
            "short_code": None,
            "customer_phone": "6281234567890",
            "courier_id": None,
            "raw_message": None,
            "items": [{"item": "Nasi goreng", "qty": 1, "note": ""}],
            "notes": None,
            "pickup_address": "Warung Bu Sri",
            "pickup_latitude": None,
            "pickup_longitude": None,
            "delivery_address": "Jl. Melati 12",
            "delivery_latitude": None,
            "delivery_longitude": None,
            "total_amount": 0,
            "evidence_ref": None,
            "offered_courier_ids": [],
            "last_offered_at": None,
            "status": "LOOKING_FOR_DRIVER",
            "taken_at": None,
            "completed_at": None,
            "cancel_reason": None,
        }
        created_at = fields.pop("created_at", None)
        data.update(fields)
        order = Order(**data)
        order.created_at = created_at or self._stamp()
        order.updated_at = order.created_at
        self.orders[order_id] = order
        return order


class FakeOrderRepository:
    def __init__(self, store: FakeStore) -> None:
        self._store = store

    async def get_by_id(self, order_id: Any) -> Optional[Order]:
        return self._store.orders.get(order_id)

    async def get_for_update(self, order_id: Any) -> Optional[Order]:
        # yield so concurrent callers interleave like separate transactions
        await asyncio.sleep(0)
        return self._store.orders.get(order_id)

    async def create(self, data: Dict[str, Any]) -> Order:
        return self._store.add_order(**data)

    async def list_all(
        self,
        *,
        status: Optional[str] = None,
        customer_phone: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Order]:
        rows = sorted(self._store.orders.values(), key=lambda o: o.created_at, reverse=True)
        if status:
            rows = [o for o in rows if o.status == status]
        if customer_phone:
            rows = [o for o in rows if o.customer_phone == customer_phone]
        return rows[skip : skip + limit]

    async def get_by_short_code(self, short_code: str) -> Optional[Order]:
        for order in self._store.orders.values():
            if order.short_code == short_code.upper():
                return order
        return None

    async def short_code_exists(self, short_code: str) -> bool:
        return any(o.short_code == short_code for o in self._store.orders.values())

    async def get_latest_for_customer(self, customer_phone: str, statuses: Iterable[str]) -> Optional[Order]:
        wanted = set(statuses)
        rows = [
            o for o in self._store.orders.values()
            if o.customer_phone == customer_phone and o.status in wanted
        ]
        return max(rows, key=lambda o: o.created_at) if rows else None

    async def get_active_for_courier(self, courier_id: uuid.UUID, statuses: Iterable[str]) -> Optional[Order]:
        wanted = set(statuses)
        for order in self._store.orders.values():
            if order.courier_id == courier_id and order.status in wanted:
                return order
        return None

    async def claim_for_courier(
        self,
        order_id: str,
        courier_id: uuid.UUID,
        *,
        expected_status: str,
        new_status: str,
        taken_at: datetime,
    ) -> bool:
        order = self._store.orders.get(order_id)
        if order is None or order.status != expected_status:
            return False
        order.status = new_status
        order.courier_id = courier_id
        order.taken_at = taken_at
        return True

    async def list_retry_due(self, *, status: str, offered_before: datetime, limit: int) -> List[str]:
        rows = sorted(self._store.orders.values(), key=lambda o: o.created_at)
        return [
            o.order_id for o in rows
            if o.status == status
            and o.has_pickup_coordinates
            and (o.last_offered_at is None or o.last_offered_at < offered_before)
        ][:limit]

    async def list_stale(self, *, statuses: Iterable[str], created_before: datetime, limit: int) -> List[str]:
        wanted = set(statuses)
        rows = sorted(self._store.orders.values(), key=lambda o: o.created_at)
        return [o.order_id for o in rows if o.status in wanted and o.created_at < created_before][:limit]


class FakeCourierRepository:
    def __init__(self, store: FakeStore) -> None:
        self._store = store

    async def get_by_id(self, courier_id: Any) -> Optional[Courier]:
        return self._store.couriers.get(courier_id)

    async def get_for_update(self, courier_id: Any) -> Optional[Courier]:
        await asyncio.sleep(0)
        return self._store.couriers.get(courier_id)

    async def get_by_phone(self, phone: str) -> Optional[Courier]:
        for courier in self._store.couriers.values():
            if courier.phone == phone:
                return courier
        return None

    async def get_by_device_id(self, device_id: str) -> Optional[Courier]:
        for courier in self._store.couriers.values():
            if courier.device_id == device_id:
                return courier
        return None

    async def list_by_ids(self, ids: Iterable[uuid.UUID]) -> List[Courier]:
        wanted = set(ids)
        rows = sorted(self._store.couriers.values(), key=lambda c: c.created_at)
        return [c for c in rows if c.id in wanted]

    async def list_dispatchable(self, *, shift_code: Optional[int] = None) -> List[Courier]:
        rows = sorted(self._store.couriers.values(), key=lambda c: c.created_at)
        return [
            c for c in rows
            if c.status == "IDLE"
            and c.is_active
            and c.has_coordinates
            and (shift_code is None or c.shift_code == shift_code)
        ]

    async def list_present(self) -> List[Courier]:
        rows = sorted(self._store.couriers.values(), key=lambda c: c.created_at)
        return [c for c in rows if c.status != "OFFLINE" and c.is_active and c.has_coordinates]


class FakeCustomerRepository:
    def __init__(self, store: FakeStore) -> None:
        self._store = store

    async def get_by_id(self, phone: Any) -> Optional[Customer]:
        return self._store.customers.get(phone)

    async def get_or_create(self, phone: str, *, name: Optional[str] = None) -> Customer:
        customer = self._store.customers.get(phone)
        if customer is None:
            customer = self._store.add_customer(phone, name=name)
        return customer

    async def update_location(
        self,
        phone: str,
        latitude: float,
        longitude: float,
        *,
        address_text: Optional[str] = None,
    ) -> Customer:
        customer = await self.get_or_create(phone)
        customer.latitude = latitude
        customer.longitude = longitude
        if address_text:
            customer.address_text = address_text
        return customer


_PATCH_TARGETS = {
    "fulfillment.services.order_service.OrderRepository": FakeOrderRepository,
    "fulfillment.services.order_service.CourierRepository": FakeCourierRepository,
    "fulfillment.services.presence_service.CourierRepository": FakeCourierRepository,
    "fulfillment.services.dispatch_service.OrderRepository": FakeOrderRepository,
    "fulfillment.services.dispatch_service.CourierRepository": FakeCourierRepository,
    "fulfillment.services.draft_service.CustomerRepository": FakeCustomerRepository,
    "fulfillment.services.courier_service.CourierRepository": FakeCourierRepository,
    "fulfillment.schedulers.auto_cancel.OrderRepository": FakeOrderRepository,
    "fulfillment.api.routers.couriers.CourierRepository": FakeCourierRepository,
}


@contextmanager
def fake_repositories(store: FakeStore) -> Iterator[FakeStore]:
    with ExitStack() as stack:
        for target, fake_cls in _PATCH_TARGETS.items():
            stack.enter_context(
                patch(target, new=lambda session, _cls=fake_cls: _cls(store))
            )
        yield store


class FakeSession:
    """Async context manager with awaitable commit/rollback/flush."""

    def __init__(self) -> None:
        self.commit = AsyncMock()
        self.rollback = AsyncMock()
        self.flush = AsyncMock()
        self.refresh = AsyncMock()
        self.add = MagicMock()

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


def make_gateway() -> MagicMock:
    gateway = MagicMock()
    gateway.send_text = AsyncMock(return_value=True)
    gateway.send_image = AsyncMock(return_value=True)
    gateway.fetch_media = AsyncMock(return_value=(b"jpeg", "image/jpeg"))
    gateway.close = AsyncMock()
    return gateway


def make_deps(
    store: Optional[FakeStore] = None,
    *,
    config: Optional[DispatchConfig] = None,
    intent_parser: Any = None,
    receipt_reader: Any = None,
) -> ServiceDeps:
    store = store or FakeStore()
    return ServiceDeps(
        session_factory=FakeSession,
        cache=MemoryCache(),
        gateway=make_gateway(),
        config=config or DispatchConfig(),
        intent_parser=intent_parser,
        receipt_reader=receipt_reader,
        clock=store.clock,
    )


def sent_texts(gateway: MagicMock, phone: Optional[str] = None) -> List[str]:
    """Bodies passed to ``gateway.send_text``, optionally for one phone."""
    return [
        call.args[1]
        for call in gateway.send_text.await_args_list
        if phone is None or call.args[0] == phone
    ]
