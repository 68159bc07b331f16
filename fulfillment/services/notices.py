"""Once-per-order customer notices, deduplicated through the volatile cache."""
from __future__ import annotations

import logging

from fulfillment.core.exceptions import CacheError
from fulfillment.infra.cache import BaseCache

logger = logging.getLogger(__name__)

NO_PICKUP_COORDINATES = "no_pickup"
NO_COURIER = "no_courier"
CANCELLED = "cancelled"


def notice_key(kind: str, order_id: str) -> str:
    return f"notice:{kind}:{order_id}"


class NoticeLedger:
    def __init__(self, cache: BaseCache, ttl_seconds: int) -> None:
        self._cache = cache
        self._ttl = ttl_seconds

    async def claim(self, kind: str, order_id: str) -> bool:
        """True exactly once per (kind, order) within the TTL.

        When the cache is unreachable the notice is allowed, so a customer is
        never left without one.
        """
        try:
            return await self._cache.set_if_absent(notice_key(kind, order_id), "1", ttl=self._ttl)
        except CacheError as exc:
            logger.warning("Notice ledger unavailable for %s/%s: %s", kind, order_id, exc)
            return True

