"""Order repository."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import and_, or_, select, update

from fulfillment.infra.database.models.order import Order
from fulfillment.infra.database.repositories.base import BaseRepository


class OrderRepository(BaseRepository[Order]):
    model = Order

    async def list_all(
        self,
        *,
        status: Optional[str] = None,
        customer_phone: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Order]:
        stmt = select(Order).order_by(Order.created_at.desc())
        if status:
            stmt = stmt.where(Order.status == status)
        if customer_phone:
            stmt = stmt.where(Order.customer_phone == customer_phone)
        stmt = stmt.offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_short_code(self, short_code: str) -> Optional[Order]:
        stmt = select(Order).where(Order.short_code == short_code.upper()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def short_code_exists(self, short_code: str) -> bool:
        stmt = select(Order.order_id).where(Order.short_code == short_code).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar() is not None

    async def get_latest_for_customer(
        self, customer_phone: str, statuses: Iterable[str]
    ) -> Optional[Order]:
        stmt = (
            select(Order)
            .where(Order.customer_phone == customer_phone, Order.status.in_(list(statuses)))
            .order_by(Order.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_for_courier(
        self, courier_id: uuid.UUID, statuses: Iterable[str]
    ) -> Optional[Order]:
        stmt = (
            select(Order)
            .where(Order.courier_id == courier_id, Order.status.in_(list(statuses)))
            .order_by(Order.taken_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def claim_for_courier(
        self,
        order_id: str,
        courier_id: uuid.UUID,
        *,
        expected_status: str,
        new_status: str,
        taken_at: datetime,
    ) -> bool:
        """Compare-and-swap the order onto *courier_id*; False if the status already moved on."""
        stmt = (
            update(Order)
            .where(Order.order_id == order_id, Order.status == expected_status)
            .values(status=new_status, courier_id=courier_id, taken_at=taken_at)
            .returning(Order.order_id)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def list_retry_due(
        self, *, status: str, offered_before: datetime, limit: int
    ) -> List[str]:
        """Ids of orders whose offer expired, or that were never offered, and have pickup coordinates."""
        stmt = (
            select(Order.order_id)
            .where(
                Order.status == status,
                Order.pickup_latitude.is_not(None),
                Order.pickup_longitude.is_not(None),
                or_(Order.last_offered_at.is_(None), Order.last_offered_at < offered_before),
            )
            .order_by(Order.created_at.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_stale(
        self, *, statuses: Iterable[str], created_before: datetime, limit: int
    ) -> List[str]:
        stmt = (
            select(Order.order_id)
            .where(and_(Order.status.in_(list(statuses)), Order.created_at < created_before))
            .order_by(Order.created_at.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

