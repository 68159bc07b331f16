"""DispatchService: match an order to the nearest eligible courier and send the offer.

An offer is derived state: ``offered_courier_ids`` plus ``last_offered_at``.
While ``now - last_offered_at`` is under the offer timeout the offered courier
keeps first refusal and further dispatch calls are no-ops. Couriers already
offered stay excluded until every eligible courier has been tried; the next
round then starts again from the nearest.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Coroutine, List, Optional, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.domain.geo import haversine_km
from fulfillment.domain.shifts import current_shift
from fulfillment.domain.types import DispatchOutcome, OrderStatus, RankedCourier
from fulfillment.infra.database.models import Order
from fulfillment.infra.database.repositories import CourierRepository, OrderRepository
from fulfillment.services.deps import ServiceDeps
from fulfillment.services.notices import NO_COURIER, NO_PICKUP_COORDINATES, NoticeLedger
from fulfillment.services.order_service import OrderService
from fulfillment.services.presence_service import PresenceService
from fulfillment.utils import formatting

logger = logging.getLogger(__name__)

_background_tasks: Set["asyncio.Task[Any]"] = set()


def select_offer_pool(order: Order, ranked: List[RankedCourier]) -> Tuple[List[RankedCourier], bool]:
    """Drop already-offered couriers; when none are left, start a new round.

    Returns ``(pool, reset)`` where ``reset`` means the offer list starts over.
    """
    offered = set(order.offered_courier_ids or [])
    fresh = [r for r in ranked if str(r.courier_id) not in offered]
    if fresh or not offered:
        return fresh, False
    return list(ranked), True


class DispatchService:
    def __init__(self, session: AsyncSession, deps: ServiceDeps) -> None:
        self._session = session
        self._config = deps.config
        self._clock = deps.clock
        self._gateway = deps.gateway
        self._order_repo = OrderRepository(session)
        self._couriers = CourierRepository(session)
        self._orders = OrderService(
            session, clock=deps.clock, country_code=deps.config.default_country_code
        )
        self._presence = PresenceService(session, deps.cache, clock=deps.clock)
        self._notices = NoticeLedger(deps.cache, deps.config.notice_ttl_seconds)

    def offer_pending(self, order: Order, now: datetime) -> bool:
        if order.last_offered_at is None:
            return False
        return now - order.last_offered_at < timedelta(seconds=self._config.offer_timeout_seconds)

    async def _rank(self, order: Order, now: datetime) -> List[RankedCourier]:
        """Online, idle, active, in-shift couriers with coordinates, nearest first."""
        shift = current_shift(now, self._config.shifts, self._config.tz)
        if shift is None:
            logger.debug("No shift window covers %s; no courier is eligible", now.isoformat())
            return []
        online = await self._presence.list_online()
        if not online:
            return []
        couriers = await self._couriers.list_dispatchable(shift_code=shift)
        ranked = [
            RankedCourier(
                courier_id=c.id,
                phone=c.phone,
                name=c.name,
                distance_km=haversine_km(
                    c.current_latitude, c.current_longitude,
                    order.pickup_latitude, order.pickup_longitude,
                ),
            )
            for c in couriers
            if str(c.id) in online
        ]
        # sort is stable: ties keep table order
        ranked.sort(key=lambda r: r.distance_km)
        return ranked

    async def rank_couriers_for_order(self, order_id: str) -> List[RankedCourier]:
        """Who would be offered next, nearest first. Reads only; sends nothing."""
        order = await self._orders.require_order(order_id)
        if not order.has_pickup_coordinates:
            return []
        ranked = await self._rank(order, self._clock())
        pool, _ = select_offer_pool(order, ranked)
        return pool

    async def _notify_once(self, kind: str, order: Order, body: str) -> None:
        if not await self._notices.claim(kind, order.order_id):
            return
        if not await self._gateway.send_text(order.customer_phone, body):
            logger.warning(
                "Notice %s for order %s not delivered", kind, order.order_id,
                extra={"order_id": order.order_id, "phone": order.customer_phone},
            )

    async def find_courier_for_order(self, order_id: str) -> DispatchOutcome:
        now = self._clock()
        # The row lock serialises concurrent dispatchers on the offer window check.
        order = await self._order_repo.get_for_update(order_id)
        if order is None:
            logger.warning("Dispatch: order %s not found", order_id, extra={"order_id": order_id})
            return DispatchOutcome.NOT_FOUND
        if OrderStatus(order.status) is not OrderStatus.LOOKING_FOR_DRIVER:
            await self._session.commit()
            return DispatchOutcome.NOT_DISPATCHABLE

        if not order.has_pickup_coordinates:
            await self._session.commit()
            logger.info("Dispatch: order %s held, no pickup coordinates", order_id, extra={"order_id": order_id})
            await self._notify_once(NO_PICKUP_COORDINATES, order, formatting.NO_PICKUP_COORDINATES)
            return DispatchOutcome.NO_PICKUP_COORDINATES

        if self.offer_pending(order, now):
            await self._session.commit()
            return DispatchOutcome.OFFER_PENDING

        ranked = await self._rank(order, now)
        pool, reset = select_offer_pool(order, ranked)
        if not pool:
            await self._session.commit()
            logger.info("Dispatch: no courier for order %s", order_id, extra={"order_id": order_id})
            await self._notify_once(NO_COURIER, order, formatting.NO_COURIER_AVAILABLE)
            return DispatchOutcome.NO_COURIER

        best = pool[0]
        order = await self._orders.record_offer(order_id, best.courier_id, reset=reset)
        logger.info(
            "Dispatch: order %s offered to courier %s (%.2f km)%s",
            order_id, best.courier_id, best.distance_km, " new round" if reset else "",
            extra={"order_id": order_id, "courier_id": str(best.courier_id)},
        )
        # A failed send counts as an unanswered offer; the retry scheduler moves on.
        if not await self._gateway.send_text(best.phone, formatting.offer_message(order, best.distance_km)):
            logger.warning(
                "Dispatch: offer for %s to %s not delivered", order_id, best.phone,
                extra={"order_id": order_id, "courier_id": str(best.courier_id)},
            )
        return DispatchOutcome.OFFERED


async def dispatch_order(deps: ServiceDeps, order_id: str) -> Optional[DispatchOutcome]:
    """Run one dispatch attempt in its own session. Errors are logged, never raised."""
    try:
        async with deps.session_factory() as session:
            return await DispatchService(session, deps).find_courier_for_order(order_id)
    except Exception:
        logger.exception("Dispatch failed for order %s", order_id, extra={"order_id": order_id})
        return None


def spawn_background(coro: Coroutine[Any, Any, Any], name: str) -> "asyncio.Task[Any]":
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def spawn_dispatch(deps: ServiceDeps, order_id: str) -> "asyncio.Task[Any]":
    """Fire-and-forget dispatch; the retry scheduler covers anything this misses."""
    return spawn_background(dispatch_order(deps, order_id), f"dispatch:{order_id}")


async def dispatch_due_orders(deps: ServiceDeps) -> int:
    """Dispatch every LOOKING_FOR_DRIVER order with pickup coordinates whose offer expired
    or that was never offered. Returns the number of orders attempted."""
    now = deps.clock()
    cutoff = now - timedelta(seconds=deps.config.offer_timeout_seconds)
    async with deps.session_factory() as session:
        order_ids = await OrderRepository(session).list_retry_due(
            status=OrderStatus.LOOKING_FOR_DRIVER.value,
            offered_before=cutoff,
            limit=deps.config.auto_cancel_batch_size,
        )
    for order_id in order_ids:
        await dispatch_order(deps, order_id)
    return len(order_ids)


def spawn_backfill(deps: ServiceDeps) -> "asyncio.Task[Any]":
    """Offer waiting orders right away, e.g. when a courier comes online."""
    return spawn_background(dispatch_due_orders(deps), "dispatch:backfill")
