"""Per-request database session dependency for feature routers."""
from typing import AsyncIterator

from dependency_injector.wiring import Provide, inject
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.di.container import ApplicationContainer
from infra.resources import DatabaseResource


@inject
async def get_db_session(
    db: DatabaseResource = Depends(Provide[ApplicationContainer.infrastructure.database]),
) -> AsyncIterator[AsyncSession]:
    """One AsyncSession per request, closed when the response is sent.

    Services own commit/rollback; this only scopes the session's lifetime.
    """
    async with db.get_session() as session:
        yield session
