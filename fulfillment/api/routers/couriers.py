"""Couriers API: who is online right now."""
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.api.dependencies import get_deps, get_session
from fulfillment.api.schemas import OnlineCourierResponse
from fulfillment.infra.database.repositories import CourierRepository
from fulfillment.services.deps import ServiceDeps
from fulfillment.services.presence_service import PresenceService

router = APIRouter(prefix="/couriers", tags=["couriers"])


@router.get("/online", response_model=List[OnlineCourierResponse])
async def list_online_couriers(
    session: AsyncSession = Depends(get_session),
    deps: ServiceDeps = Depends(get_deps),
):
    online = await PresenceService(session, deps.cache, clock=deps.clock).list_online()
    ids = []
    for raw in online:
        try:
            ids.append(uuid.UUID(raw))
        except ValueError:
            continue
    couriers = await CourierRepository(session).list_by_ids(ids)
    return [OnlineCourierResponse.model_validate(c) for c in couriers]
