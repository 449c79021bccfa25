"""
Async SQLAlchemy engine and sessions for PostgreSQL.

The connection store opens its own session from ``async_session_factory``
when a caller does not pass one; route handlers get theirs from
``get_db_session``.
"""

from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import Settings, get_settings


def build_engine(settings: Settings) -> AsyncEngine:
    """Engine with the pool sized by ``DB_POOL_SIZE`` / ``DB_MAX_OVERFLOW``."""
    return create_async_engine(
        settings.database_url,
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle_seconds,
        pool_pre_ping=True,
    )


engine = build_engine(get_settings())

# Records are read after commit, so attributes must not expire
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session for ``Depends``.  Handlers commit explicitly;
    whatever is still pending is committed here, and any error rolls the
    request's work back.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
