"""PresenceService: which couriers are reachable for dispatch.

The couriers table is authoritative; the ``online_couriers`` cache set only
saves a table scan per dispatch cycle. An empty or unreachable cache falls
back to the table and repopulates the set.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import CacheError, NotFoundError, ValidationError
from fulfillment.domain.geo import is_valid_coordinate
from fulfillment.domain.types import CourierStatus
from fulfillment.infra.cache import BaseCache
from fulfillment.infra.database.models import Courier
from fulfillment.infra.database.repositories import CourierRepository
from fulfillment.services.deps import utcnow

logger = logging.getLogger(__name__)

ONLINE_COURIERS_KEY = "online_couriers"


class PresenceService:
    def __init__(
        self,
        session: AsyncSession,
        cache: BaseCache,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._couriers = CourierRepository(session)
        self._cache = cache
        self._clock = clock

    async def _require(self, courier_id: uuid.UUID) -> Courier:
        courier = await self._couriers.get_for_update(courier_id)
        if courier is None:
            raise NotFoundError(f"Courier {courier_id} not found", details={"courier_id": str(courier_id)})
        return courier

    async def mark_online(
        self,
        courier_id: uuid.UUID,
        *,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Courier:
        """Flip the courier to IDLE (unless BUSY) and add it to the presence set."""
        courier = await self._require(courier_id)
        if latitude is not None or longitude is not None:
            if not is_valid_coordinate(latitude, longitude):
                raise ValidationError(
                    "Courier coordinates out of range",
                    details={"latitude": latitude, "longitude": longitude},
                )
            courier.current_latitude = latitude
            courier.current_longitude = longitude
        if courier.status != CourierStatus.BUSY.value:
            courier.status = CourierStatus.IDLE.value
        courier.last_active_at = self._clock()
        await self._session.commit()
        # An empty set is rebuilt first so one login does not hide the rest.
        await self.list_online()
        try:
            await self._cache.add_members(ONLINE_COURIERS_KEY, [str(courier.id)])
        except CacheError as exc:
            logger.warning("Presence cache add failed for %s: %s", courier.id, exc)
        logger.info("Courier %s online", courier.id, extra={"courier_id": str(courier.id)})
        return courier

    async def mark_offline(self, courier_id: uuid.UUID) -> Courier:
        courier = await self._require(courier_id)
        if courier.status != CourierStatus.BUSY.value:
            courier.status = CourierStatus.OFFLINE.value
        courier.last_active_at = self._clock()
        await self._session.commit()
        try:
            await self._cache.remove_members(ONLINE_COURIERS_KEY, [str(courier.id)])
        except CacheError as exc:
            logger.warning("Presence cache remove failed for %s: %s", courier.id, exc)
        logger.info("Courier %s offline", courier.id, extra={"courier_id": str(courier.id)})
        return courier

    async def update_location(self, courier_id: uuid.UUID, latitude: float, longitude: float) -> Courier:
        if not is_valid_coordinate(latitude, longitude):
            raise ValidationError(
                "Courier coordinates out of range",
                details={"latitude": latitude, "longitude": longitude},
            )
        courier = await self._require(courier_id)
        courier.current_latitude = latitude
        courier.current_longitude = longitude
        courier.last_active_at = self._clock()
        await self._session.commit()
        return courier

    async def list_online(self) -> Set[str]:
        """Courier ids (as strings) currently online.

        A rebuild takes BUSY couriers too: they are released to IDLE by the
        order lifecycle without passing through ``mark_online`` again.
        """
        try:
            cached = await self._cache.members(ONLINE_COURIERS_KEY)
        except CacheError as exc:
            logger.warning("Presence cache unavailable, reading couriers table: %s", exc)
            cached = set()
        if cached:
            return cached

        couriers = await self._couriers.list_present()
        online = {str(c.id) for c in couriers}
        if online:
            try:
                await self._cache.add_members(ONLINE_COURIERS_KEY, online)
            except CacheError as exc:
                logger.warning("Presence cache repopulate failed: %s", exc)
        logger.debug("Presence cache rebuilt from table: %d couriers", len(online))
        return online
