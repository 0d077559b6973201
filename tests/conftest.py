"""Pytest fixtures for RMS service, repository, and router tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import rms.models  # noqa: F401  (registers every table on Base.metadata)
from rms.database.base import Base
from rms.models.enums import RmsRole
from rms.modules.rma.service import RmaLifecycleService
from rms.modules.users.service import ActorContext
from tests.factories import make_actor


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

# File-backed SQLite so each session gets its own connection, like PostgreSQL
@pytest_asyncio.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rms.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def lifecycle(session_factory) -> RmaLifecycleService:
    return RmaLifecycleService(session_factory)


# ---------------------------------------------------------------------------
# Actors (all scoped to BRANCH_A unless a test says otherwise)
# ---------------------------------------------------------------------------


@pytest.fixture
def agent() -> ActorContext:
    return make_actor(RmsRole.RETURNS_AGENT)


@pytest.fixture
def manager() -> ActorContext:
    return make_actor(RmsRole.BRANCH_MANAGER)


@pytest.fixture
def warehouse() -> ActorContext:
    return make_actor(RmsRole.WAREHOUSE)


@pytest.fixture
def qc() -> ActorContext:
    return make_actor(RmsRole.QC)


@pytest.fixture
def finance() -> ActorContext:
    return make_actor(RmsRole.FINANCE)


@pytest.fixture
def customer() -> ActorContext:
    return make_actor(RmsRole.CUSTOMER)


@pytest.fixture
def admin() -> ActorContext:
    return make_actor(RmsRole.ADMIN, branch_ids=[], is_admin=True)
