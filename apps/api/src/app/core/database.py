"""
Database Configuration

Async SQLAlchemy engine, session factory and FastAPI session dependencies.

Business code never receives a raw session for tenant-scoped tables: route
handlers depend on ``get_scoped_db`` (see app.modules.shared.scoping), which
wraps the session yielded here. ``get_db`` is reserved for platform-level
flows that run before a tenant scope exists (login).
"""

from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Dependency returning the session factory.

    The sequence generator opens its own short transactions from this
    factory; tests override it to point at a throwaway database.
    """
    return async_session_maker


async def get_db(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an unscoped database session (platform-level flows only)."""
    async with session_maker() as session:
        yield session


async def init_db() -> None:
    """Verify the database is reachable. Call on application startup."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()
