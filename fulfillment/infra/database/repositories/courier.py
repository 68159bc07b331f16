"""Courier repository."""
from __future__ import annotations

import uuid
from typing import Iterable, List, Optional

from sqlalchemy import select

from fulfillment.infra.database.models.courier import Courier
from fulfillment.infra.database.repositories.base import BaseRepository


class CourierRepository(BaseRepository[Courier]):
    model = Courier

    async def get_by_phone(self, phone: str) -> Optional[Courier]:
        stmt = select(Courier).where(Courier.phone == phone).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_device_id(self, device_id: str) -> Optional[Courier]:
        stmt = select(Courier).where(Courier.device_id == device_id).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_ids(self, ids: Iterable[uuid.UUID]) -> List[Courier]:
        ids = list(ids)
        if not ids:
            return []
        stmt = select(Courier).where(Courier.id.in_(ids)).order_by(Courier.created_at.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_dispatchable(self, *, shift_code: Optional[int] = None) -> List[Courier]:
        """IDLE, active couriers with coordinates, in insertion order."""
        stmt = select(Courier).where(
            Courier.status == "IDLE",
            Courier.is_active.is_(True),
            Courier.current_latitude.is_not(None),
            Courier.current_longitude.is_not(None),
        )
        if shift_code is not None:
            stmt = stmt.where(Courier.shift_code == shift_code)
        stmt = stmt.order_by(Courier.created_at.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_present(self) -> List[Courier]:
        """Active couriers that are not OFFLINE (IDLE or BUSY) and have coordinates."""
        stmt = (
            select(Courier)
            .where(
                Courier.status != "OFFLINE",
                Courier.is_active.is_(True),
                Courier.current_latitude.is_not(None),
                Courier.current_longitude.is_not(None),
            )
            .order_by(Courier.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
