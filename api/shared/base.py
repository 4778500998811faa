"""Repository base class shared by feature repositories."""
from abc import ABC
from typing import Generic, List, Type, TypeVar

from sqlalchemy import Delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

EntityT = TypeVar("EntityT", bound=DeclarativeBase)


class BaseRepository(ABC, Generic[EntityT]):
    """Async repository bound to one entity class and one caller-owned session.

    Repositories flush but never commit; the calling service owns the transaction.
    """

    model: Type[EntityT]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_many(self, entities: List[EntityT]) -> List[EntityT]:
        self.session.add_all(entities)
        await self.session.flush()
        return entities

    async def execute_delete(self, stmt: Delete) -> int:
        """Run a bulk DELETE and return the number of affected rows."""
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount or 0
