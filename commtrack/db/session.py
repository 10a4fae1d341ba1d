"""
Async SQLAlchemy database access.

A single Database object owns the engine and session factory. It is
constructed at process start (FastAPI lifespan, scripts) and disposed at
shutdown; nothing in the package opens its own engine.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)


class Database:
    """Engine + session factory with an explicit lifecycle."""

    def __init__(self, url: str, echo: bool = False):
        engine_kwargs = {"echo": echo}
        if url.startswith("postgresql+asyncpg"):
            # pooling is left to the connection pooler in front of PostgreSQL
            engine_kwargs["poolclass"] = NullPool
            engine_kwargs["connect_args"] = {
                "statement_cache_size": 0,  # no prepared statements across pooled connections
            }

        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.sessionmaker = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Context manager for database sessions.
        Use in non-FastAPI contexts (scheduler jobs, scripts, etc).
        Usage:
            async with database.session() as db:
                result = await db.execute(...)
        """
        async with self.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create every table (tests and local development only)."""
        from commtrack.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        logger.info("Disposing database engine")
        await self.engine.dispose()


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.
    Usage:
        @app.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    database: Database = request.app.state.db
    async with database.session() as session:
        yield session
