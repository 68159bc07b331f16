"""Customer conversation -> draft order -> confirmed order.

The draft session (volatile cache, TTL-bound) and the DRAFT order row are two
separate lifecycles; they are joined by ``DraftSession.order_id`` and meet at
confirmation, when the session is deleted and dispatch starts.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.clients.llm.providers.noop import NoOpLLMClient
from fulfillment.core.exceptions import CacheError, MissingFieldError, ValidationError
from fulfillment.domain.drafts import (
    DraftSession,
    is_draft_complete,
    merge_draft,
    missing_draft_fields,
)
from fulfillment.domain.geo import is_link_only, is_valid_coordinate, parse_maps_link
from fulfillment.domain.types import ASSIGNED_STATUSES, DRAFT_STATUSES, Intent, OrderStatus, ParsedMessage
from fulfillment.infra.cache import BaseCache
from fulfillment.infra.database.models import Customer, Order
from fulfillment.infra.database.repositories import CustomerRepository
from fulfillment.parsing.intent_parser import LLMIntentParser
from fulfillment.services.deps import ServiceDeps
from fulfillment.services.dispatch_service import spawn_dispatch
from fulfillment.services.order_service import OrderService
from fulfillment.utils import formatting
from fulfillment.utils.phones import normalize_phone

logger = logging.getLogger(__name__)

CUSTOMER_CANCEL_REASON = "Cancelled by customer"


def draft_key(phone: str) -> str:
    return f"session:{phone}:draft"


class DraftSessionStore:
    """Last-write-wins draft sessions keyed by customer phone."""

    def __init__(self, cache: BaseCache, ttl_seconds: int) -> None:
        self._cache = cache
        self._ttl = ttl_seconds

    async def load(self, phone: str) -> DraftSession:
        try:
            raw = await self._cache.get(draft_key(phone))
        except CacheError as exc:
            logger.warning("Draft session read failed for %s: %s", phone, exc, extra={"phone": phone})
            return DraftSession()
        return DraftSession.from_json(raw)

    async def save(self, phone: str, session: DraftSession) -> None:
        try:
            await self._cache.set(draft_key(phone), session.to_json(), ttl=self._ttl)
        except CacheError as exc:
            logger.warning("Draft session write failed for %s: %s", phone, exc, extra={"phone": phone})

    async def delete(self, phone: str) -> None:
        try:
            await self._cache.delete(draft_key(phone))
        except CacheError as exc:
            logger.warning("Draft session delete failed for %s: %s", phone, exc, extra={"phone": phone})

    async def discard_for(self, phone: str, order_id: str) -> None:
        """Drop the session only if it belongs to ``order_id``; a newer draft survives."""
        if (await self.load(phone)).order_id == order_id:
            await self.delete(phone)


def _hydrate(session: DraftSession, draft_order: Optional[Order]) -> DraftSession:
    """Rebuild an expired session from the DRAFT row it belonged to.

    A session still pointing at an order that is no longer a draft is stale
    and starts over empty.
    """
    if draft_order is None:
        return session if session.order_id is None else DraftSession()
    if session.order_id == draft_order.order_id:
        return session
    return DraftSession(
        items=list(draft_order.items or []),
        pickup=draft_order.pickup_address or "",
        delivery_address=draft_order.delivery_address or "",
        notes=draft_order.notes or "",
        has_coordinate=session.has_coordinate or draft_order.has_delivery_coordinates,
        delivery_latitude=session.delivery_latitude if session.has_coordinate else draft_order.delivery_latitude,
        delivery_longitude=session.delivery_longitude if session.has_coordinate else draft_order.delivery_longitude,
        pickup_latitude=session.pickup_latitude if session.has_pickup_coordinate else draft_order.pickup_latitude,
        pickup_longitude=session.pickup_longitude if session.has_pickup_coordinate else draft_order.pickup_longitude,
        order_id=draft_order.order_id,
    )


class DraftAssembler:
    """Handles one inbound customer message and returns the reply text."""

    def __init__(self, session: AsyncSession, deps: ServiceDeps) -> None:
        self._session = session
        self._deps = deps
        self._country_code = deps.config.default_country_code
        self._orders = OrderService(session, clock=deps.clock, country_code=self._country_code)
        self._customers = CustomerRepository(session)
        self._store = DraftSessionStore(deps.cache, deps.config.draft_ttl_seconds)
        self._parser = deps.intent_parser or LLMIntentParser(NoOpLLMClient())

    def _phone(self, raw: str) -> str:
        phone = normalize_phone(raw, country_code=self._country_code)
        if phone is None:
            raise ValidationError(f"Invalid phone number: {raw!r}", details={"phone": raw})
        return phone

    async def handle_message(self, sender: str, text: str) -> str:
        phone = self._phone(sender)
        text = (text or "").strip()

        link = parse_maps_link(text)
        if link is not None and is_link_only(text):
            return await self.handle_location(phone, link[0], link[1])

        customer = await self._customers.get_or_create(phone)
        draft_order = await self._orders.latest_draft_for(phone)
        active = await self._orders.active_order_for(phone)
        draft = _hydrate(await self._store.load(phone), draft_order)
        complete = is_draft_complete(draft, customer_has_coordinates=customer.has_coordinates)

        current = draft_order or active
        parsed = await self._parser.parse(text, context={
            "status": current.status if current is not None else "NONE",
            "draft": draft.as_order_fields() if draft_order is not None else {},
            "draft_complete": draft_order is not None and complete,
        })
        logger.info("Customer %s intent=%s", phone, parsed.intent.value, extra={"phone": phone})

        if parsed.intent is Intent.CANCEL:
            return await self._cancel(phone, draft_order, active)
        if parsed.intent is Intent.CHECK_STATUS:
            return self._status(current)
        if parsed.intent is Intent.CONFIRM_FINAL:
            if draft_order is None:
                return parsed.reply_text or formatting.NO_ACTIVE_ORDER
            return await self._confirm(phone, draft, draft_order, customer)
        if parsed.intent in (Intent.ORDER_INCOMPLETE, Intent.ORDER_COMPLETE) or parsed.fields:
            return await self._merge(phone, text, draft, draft_order, customer, parsed)
        return parsed.reply_text or formatting.GREETING

    async def _merge(
        self,
        phone: str,
        text: str,
        draft: DraftSession,
        draft_order: Optional[Order],
        customer: Customer,
        parsed: ParsedMessage,
    ) -> str:
        merged = merge_draft(draft, parsed.fields)
        if draft_order is None:
            if not (merged.items or merged.pickup or merged.delivery_address):
                return parsed.reply_text or formatting.GREETING
            draft_order = await self._orders.create_draft(
                phone, {**merged.as_order_fields(), "raw_message": text}
            )
        else:
            draft_order = await self._orders.update_draft(draft_order.order_id, merged.as_order_fields())
        merged.order_id = draft_order.order_id
        await self._store.save(phone, merged)

        missing = missing_draft_fields(merged, customer_has_coordinates=customer.has_coordinates)
        if not missing:
            await self._orders.mark_pending_confirmation(draft_order.order_id)
            return formatting.draft_summary(merged.items, merged.pickup, merged.delivery_address, merged.notes)
        prefix = f"{parsed.reply_text}\n\n" if parsed.reply_text else ""
        return prefix + formatting.missing_fields_message(missing)

    async def _confirm(
        self, phone: str, draft: DraftSession, draft_order: Order, customer: Customer
    ) -> str:
        missing = missing_draft_fields(draft, customer_has_coordinates=customer.has_coordinates)
        if missing:
            return formatting.missing_fields_message(missing)

        pickup = (draft.pickup_latitude, draft.pickup_longitude) if draft.has_pickup_coordinate else None
        delivery = None
        if draft.delivery_latitude is not None and draft.delivery_longitude is not None:
            delivery = (draft.delivery_latitude, draft.delivery_longitude)
        elif customer.has_coordinates:
            delivery = (customer.latitude, customer.longitude)
        try:
            order = await self._orders.confirm(
                draft_order.order_id, pickup_coordinates=pickup, delivery_coordinates=delivery
            )
        except MissingFieldError as exc:
            return formatting.missing_fields_message(exc.fields)

        customer.address_text = order.delivery_address
        customer.last_order_date = self._deps.clock()
        await self._session.commit()
        await self._store.delete(phone)
        spawn_dispatch(self._deps, order.order_id)
        return formatting.ORDER_CONFIRMED.format(order_id=order.order_id)

    async def _cancel(self, phone: str, draft_order: Optional[Order], active: Optional[Order]) -> str:
        await self._store.delete(phone)
        cancelled = False
        if draft_order is not None:
            cancelled = await self._orders.cancel(
                draft_order.order_id, CUSTOMER_CANCEL_REASON, only_if=DRAFT_STATUSES
            ) is not None
        if active is not None:
            if OrderStatus(active.status) in ASSIGNED_STATUSES:
                return formatting.CANNOT_CANCEL_TAKEN
            released = await self._orders.cancel(
                active.order_id, CUSTOMER_CANCEL_REASON, only_if=(OrderStatus.LOOKING_FOR_DRIVER,)
            )
            cancelled = released is not None or cancelled
        return formatting.ORDER_CANCELLED_BY_CUSTOMER if cancelled else formatting.NOTHING_TO_CANCEL

    @staticmethod
    def _status(order: Optional[Order]) -> str:
        if order is None:
            return formatting.NO_ACTIVE_ORDER
        return f"Status pesanan {order.order_id}: *{formatting.status_label(order.status)}*"

    async def handle_location(
        self,
        sender: str,
        latitude: float,
        longitude: float,
        *,
        address_text: Optional[str] = None,
    ) -> str:
        """First shared location is the delivery point, the next one the pickup point."""
        phone = self._phone(sender)
        if not is_valid_coordinate(latitude, longitude):
            raise ValidationError(
                "Coordinates out of range", details={"latitude": latitude, "longitude": longitude}
            )

        active = await self._orders.active_order_for(phone)
        if (
            active is not None
            and OrderStatus(active.status) is OrderStatus.LOOKING_FOR_DRIVER
            and not active.has_pickup_coordinates
        ):
            await self._orders.set_pickup_coordinates(active.order_id, latitude, longitude)
            spawn_dispatch(self._deps, active.order_id)
            return formatting.PICKUP_LOCATION_UPDATED

        customer = await self._customers.get_or_create(phone)
        draft_order = await self._orders.latest_draft_for(phone)
        draft = _hydrate(await self._store.load(phone), draft_order)

        if not draft.has_coordinate:
            await self._customers.update_location(phone, latitude, longitude, address_text=address_text)
            await self._session.commit()
            draft.has_coordinate = True
            draft.delivery_latitude, draft.delivery_longitude = latitude, longitude
            if draft_order is not None:
                await self._orders.update_draft(
                    draft_order.order_id, {"delivery_latitude": latitude, "delivery_longitude": longitude}
                )
            await self._store.save(phone, draft)
            return formatting.DELIVERY_LOCATION_SAVED

        draft.pickup_latitude, draft.pickup_longitude = latitude, longitude
        if draft_order is not None:
            await self._orders.update_draft(
                draft_order.order_id, {"pickup_latitude": latitude, "pickup_longitude": longitude}
            )
            if is_draft_complete(draft, customer_has_coordinates=customer.has_coordinates):
                await self._orders.mark_pending_confirmation(draft_order.order_id)
        await self._store.save(phone, draft)
        return formatting.PICKUP_LOCATION_SAVED
