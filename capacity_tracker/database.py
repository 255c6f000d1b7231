"""Database wiring for the capacity tracker.

One async engine per process, built from ``settings.DATABASE_URL``. Request
handlers get a session through :func:`get_db`, which turns the whole request
into one unit of work: commit when the handler returns, roll back when it
raises.
"""

from typing import Any, AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from capacity_tracker.config import settings


def engine_options(database_url: str) -> dict[str, Any]:
    """Keyword arguments for ``create_async_engine``.

    SQLite drivers do not use a queue pool, so the sizing knobs only apply to
    server databases.
    """
    options: dict[str, Any] = {"echo": settings.DB_ECHO}
    if make_url(database_url).get_backend_name() != "sqlite":
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
        )
    return options


engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))

# Allocations and requests are read back after commit to build responses
session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base shared by users, allocations, time off, settings and audit rows."""


async def get_db() -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
