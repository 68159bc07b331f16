"""FastAPI dependency providers."""
from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.services.deps import ServiceDeps


def get_deps(request: Request) -> ServiceDeps:
    """The collaborators assembled by the application lifespan."""
    return request.app.state.deps


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession from the app-level session factory; roll back on error."""
    session_factory = get_deps(request).session_factory
    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
