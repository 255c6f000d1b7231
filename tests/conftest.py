"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from capacity_tracker.common.constants import TimeOffStatus, TimeOffType, UserRole
from capacity_tracker.config import settings
from capacity_tracker.database import Base, get_db
from capacity_tracker.main import create_app

# Import ALL model modules so every table is registered on Base.metadata
import capacity_tracker.app_settings.models  # noqa: F401
import capacity_tracker.capacity.models  # noqa: F401
import capacity_tracker.common.audit  # noqa: F401
import capacity_tracker.time_off.models  # noqa: F401
import capacity_tracker.users.models  # noqa: F401

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine.sync_engine, "connect")
def _sqlite_on_connect(dbapi_conn, connection_record):
    """Enforce FK actions (CASCADE / SET NULL) like PostgreSQL does."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from capacity_tracker.common.rate_limit import limiter
    try:
        if hasattr(limiter, "_storage"):
            limiter._storage.reset()
    except Exception:
        pass
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

# Monday of the week used by most scenarios
WEEK = date(2025, 7, 14)


def _make_user(
    *,
    role: UserRole = UserRole.developer,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> dict:
    suffix = uuid.uuid4().hex[:6]
    return dict(
        id=uuid.uuid4(),
        email=email or f"{role.value}.{suffix}@example.com",
        name=name or f"{role.value.replace('_', ' ').title()} {suffix}",
        role=role,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def seed_user(db: AsyncSession, role: UserRole = UserRole.developer, **kwargs):
    from capacity_tracker.users.models import User

    user = User(**_make_user(role=role, **kwargs))
    db.add(user)
    await db.commit()
    return user


async def seed_time_off(
    db: AsyncSession,
    user_id: uuid.UUID,
    start_date: date,
    end_date: date,
    *,
    status: TimeOffStatus = TimeOffStatus.approved,
    type: TimeOffType = TimeOffType.vacation,
    is_admin_created: bool = False,
    created_at: Optional[datetime] = None,
):
    from capacity_tracker.time_off.models import TimeOffRequest

    request = TimeOffRequest(
        id=uuid.uuid4(),
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        type=type,
        status=status,
        is_admin_created=is_admin_created,
        created_at=created_at or datetime.now(timezone.utc),
    )
    db.add(request)
    await db.commit()
    return request


async def seed_allocation(
    db: AsyncSession,
    user_id: uuid.UUID,
    week_start: date = WEEK,
    *,
    weekly_priority: Optional[str] = None,
    **categories: float,
):
    from capacity_tracker.capacity.models import Allocation

    alloc = Allocation(
        id=uuid.uuid4(),
        user_id=user_id,
        week_start=week_start,
        weekly_priority=weekly_priority,
        **categories,
    )
    db.add(alloc)
    await db.commit()
    return alloc


@pytest.fixture
async def admin(db):
    return await seed_user(db, UserRole.admin, name="Ada Admin")


@pytest.fixture
async def manager(db):
    return await seed_user(db, UserRole.manager, name="Mia Manager")


@pytest.fixture
async def qa_manager(db):
    return await seed_user(db, UserRole.qa_manager, name="Quinn QA")


@pytest.fixture
async def developer(db):
    return await seed_user(db, UserRole.developer, name="Dana Dev")


@pytest.fixture
async def tester(db):
    return await seed_user(db, UserRole.tester, name="Theo Tester")


@pytest.fixture
async def view_only(db):
    return await seed_user(db, UserRole.view_only, name="Vic Viewer")


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: uuid.UUID,
    *,
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
