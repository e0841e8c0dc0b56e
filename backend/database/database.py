"""
Database engine and session handling for heartbeats and downtime events.

Stores open a short-lived session per operation through
`db_manager.get_session()`; the session commits when the block exits and
rolls back when it raises.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config import settings
from models.models import Base
from utils.logging import get_logger

logger = get_logger("database")


class DatabaseManager:
    """Owns the async engine and hands out sessions."""

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        self.engine = create_async_engine(
            database_url or settings.DATABASE_URL,
            poolclass=NullPool,
            echo=settings.SQL_DEBUG if echo is None else echo,
        )
        self.async_session_maker = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def create_tables(self) -> None:
        """Create the heartbeats and downtime_events tables if missing."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured", extra={"data": {"tables": sorted(Base.metadata.tables)}})

    async def drop_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def ping(self) -> None:
        """Round-trip a trivial query; raises when the database is unreachable."""
        async with self.get_session() as session:
            await session.execute(text("SELECT 1"))

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        await self.engine.dispose()


# Global database manager instance
db_manager = DatabaseManager()
