"""PostgreSQL Database Configuration"""
from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from evv_service.config import get_settings
from evv_service.db.base import Base

__all__ = ["Base", "get_engine", "get_session_factory", "get_db"]


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the async engine on first use."""
    settings = get_settings()
    return create_async_engine(
        settings.database_url,
        echo=settings.db_echo,
        poolclass=NullPool,
    )


@lru_cache
def get_session_factory() -> async_sessionmaker:
    return async_sessionmaker(
        bind=get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()
