"""Cancel orders that have sat unfinished for too long."""
from __future__ import annotations

import logging
from datetime import timedelta

from fulfillment.domain.types import AUTO_CANCEL_STATUSES
from fulfillment.infra.database.repositories import OrderRepository
from fulfillment.schedulers.base import PeriodicTask
from fulfillment.services.deps import ServiceDeps
from fulfillment.services.draft_service import DraftSessionStore
from fulfillment.services.notices import CANCELLED, NoticeLedger
from fulfillment.services.order_service import OrderService
from fulfillment.utils import formatting

logger = logging.getLogger(__name__)

AUTO_CANCEL_REASON = "Auto-cancelled: no activity"


class AutoCancelScheduler(PeriodicTask):
    name = "auto_cancel"

    def __init__(self, deps: ServiceDeps) -> None:
        super().__init__(deps.config.auto_cancel_interval_seconds)
        self._deps = deps
        self._notices = NoticeLedger(deps.cache, deps.config.notice_ttl_seconds)
        self._drafts = DraftSessionStore(deps.cache, deps.config.draft_ttl_seconds)

    async def run_once(self) -> int:
        """Cancel one batch of stale orders; returns how many were cancelled."""
        config = self._deps.config
        created_before = self._deps.clock() - timedelta(hours=config.auto_cancel_age_hours)
        async with self._deps.session_factory() as session:
            order_ids = await OrderRepository(session).list_stale(
                statuses=[s.value for s in AUTO_CANCEL_STATUSES],
                created_before=created_before,
                limit=config.auto_cancel_batch_size,
            )

        cancelled = 0
        for order_id in order_ids:
            try:
                if await self._cancel_one(order_id):
                    cancelled += 1
            except Exception:
                logger.exception("Auto-cancel failed for order %s", order_id, extra={"order_id": order_id})
        if order_ids:
            logger.info("Auto-cancel: %d of %d stale order(s) cancelled", cancelled, len(order_ids))
        return cancelled

    async def _cancel_one(self, order_id: str) -> bool:
        async with self._deps.session_factory() as session:
            order = await OrderService(
                session,
                clock=self._deps.clock,
                country_code=self._deps.config.default_country_code,
            ).cancel(order_id, AUTO_CANCEL_REASON, only_if=AUTO_CANCEL_STATUSES)
            if order is None:
                return False
            phone = order.customer_phone
        await self._drafts.discard_for(phone, order_id)

        if await self._notices.claim(CANCELLED, order_id):
            body = formatting.AUTO_CANCELLED.format(order_id=order_id)
            if not await self._deps.gateway.send_text(phone, body):
                logger.warning(
                    "Auto-cancel notice for %s not delivered", order_id,
                    extra={"order_id": order_id, "phone": phone},
                )
        return True
