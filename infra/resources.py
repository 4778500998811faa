"""Infrastructure resources.

Only the async Postgres engine lives here; the infra layer never imports application
features.
"""
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


class DatabaseResource:
    """Lazily created async engine plus its session factory."""

    def __init__(self, database_url: str, pool_size: int = 5, max_overflow: int = 10):
        self.database_url = database_url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None

    async def init(self) -> "DatabaseResource":
        if self.is_initialized:
            return self
        self.engine = create_async_engine(
            self.database_url,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
        )
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        return self

    async def ping(self) -> None:
        """Round-trip ``SELECT 1``; raises if the database is unreachable."""
        if self.engine is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    def get_session(self) -> AsyncSession:
        if self.session_factory is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self.session_factory()

    async def shutdown(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self.session_factory = None
