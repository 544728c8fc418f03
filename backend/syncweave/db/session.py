"""Async database session management for the mirror store."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from syncweave.core.config import settings


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine for the given URL."""
    if url.startswith("sqlite"):
        return create_async_engine(url)
    return create_async_engine(url, pool_pre_ping=True, pool_size=20, max_overflow=10)


async_engine = build_engine(settings.sqlalchemy_database_uri)

AsyncSessionLocal = async_sessionmaker(
    bind=async_engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Get an async session that rolls back on error and is always closed.

    Example:
        async with get_db_context() as db:
            await crud.connector.get(db, connector_id)
    """
    async with AsyncSessionLocal() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise
