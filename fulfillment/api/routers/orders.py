"""Orders API: read projection, eligible-courier ranking, admin cancel and re-dispatch."""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.api.dependencies import get_deps, get_session
from fulfillment.api.schemas import (
    CancelOrderRequest,
    DispatchResponse,
    EligibleCourierResponse,
    OrderResponse,
)
from fulfillment.core.exceptions import NotFoundError
from fulfillment.domain.types import DispatchOutcome, OrderStatus
from fulfillment.services.deps import ServiceDeps
from fulfillment.services.dispatch_service import DispatchService
from fulfillment.services.draft_service import DraftSessionStore
from fulfillment.services.notices import CANCELLED, NoticeLedger
from fulfillment.services.order_service import OrderService
from fulfillment.utils import formatting

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])

_VALID_STATUSES = {s.value for s in OrderStatus}


def _order_service(session: AsyncSession, deps: ServiceDeps) -> OrderService:
    return OrderService(session, clock=deps.clock, country_code=deps.config.default_country_code)


@router.get("", response_model=List[OrderResponse])
async def list_orders(
    status: Optional[str] = None,
    customer_phone: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    session: AsyncSession = Depends(get_session),
    deps: ServiceDeps = Depends(get_deps),
):
    """List orders, newest first, optionally filtered by status or customer."""
    if status and status.upper() not in _VALID_STATUSES:
        raise HTTPException(
            status_code=400, detail=f"Invalid status. Use one of: {sorted(_VALID_STATUSES)}"
        )
    orders = await _order_service(session, deps).list_orders(
        status=status.upper() if status else None,
        customer_phone=customer_phone,
        skip=skip,
        limit=min(max(limit, 1), 500),
    )
    return [OrderResponse.model_validate(o) for o in orders]


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    deps: ServiceDeps = Depends(get_deps),
):
    order = await _order_service(session, deps).require_order(order_id)
    return OrderResponse.model_validate(order)


@router.get("/{order_id}/eligible-couriers", response_model=List[EligibleCourierResponse])
async def eligible_couriers(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    deps: ServiceDeps = Depends(get_deps),
):
    """Who dispatch would offer this order to next, nearest first. Sends nothing."""
    ranked = await DispatchService(session, deps).rank_couriers_for_order(order_id)
    return [EligibleCourierResponse.model_validate(r) for r in ranked]


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest = CancelOrderRequest(),
    session: AsyncSession = Depends(get_session),
    deps: ServiceDeps = Depends(get_deps),
):
    service = _order_service(session, deps)
    order = await service.cancel(order_id, body.reason)
    if order is None:
        return OrderResponse.model_validate(await service.require_order(order_id))
    drafts = DraftSessionStore(deps.cache, deps.config.draft_ttl_seconds)
    await drafts.discard_for(order.customer_phone, order_id)

    if body.notify_customer and await NoticeLedger(deps.cache, deps.config.notice_ttl_seconds).claim(
        CANCELLED, order_id
    ):
        text = formatting.ADMIN_CANCELLED.format(order_id=order_id, reason=body.reason)
        if not await deps.gateway.send_text(order.customer_phone, text):
            logger.warning("Cancel notice for %s not delivered", order_id, extra={"order_id": order_id})
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/dispatch", response_model=DispatchResponse)
async def dispatch_order_now(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    deps: ServiceDeps = Depends(get_deps),
):
    """Run one dispatch attempt right away; a pending offer makes this a no-op."""
    outcome = await DispatchService(session, deps).find_courier_for_order(order_id)
    if outcome is DispatchOutcome.NOT_FOUND:
        raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
    return DispatchResponse(order_id=order_id, outcome=outcome.value)
