"""Re-offer orders whose offer went unanswered."""
from __future__ import annotations

import logging

from fulfillment.schedulers.base import PeriodicTask
from fulfillment.services.deps import ServiceDeps
from fulfillment.services.dispatch_service import dispatch_due_orders

logger = logging.getLogger(__name__)


class RetryScheduler(PeriodicTask):
    """Every ``retry_interval_seconds``, dispatch LOOKING_FOR_DRIVER orders with
    pickup coordinates whose last offer is older than the offer timeout.

    Orders that were never offered are picked up too. Each order runs in its
    own session; ``dispatch_order`` logs and swallows per-order failures.
    """

    name = "retry"

    def __init__(self, deps: ServiceDeps) -> None:
        super().__init__(deps.config.retry_interval_seconds)
        self._deps = deps

    async def run_once(self) -> int:
        count = await dispatch_due_orders(self._deps)
        if count:
            logger.info("Retry scheduler: %d order(s) re-dispatched", count)
        return count
