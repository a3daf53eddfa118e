"""Fixtures for tests that run against a real PostgreSQL database.

Set TENANT_HEALTH_TEST_DATABASE_URL (postgresql+asyncpg://...) to run
them; without it every test here is skipped. Tables are created before
and dropped after each test, so point it at a disposable database.
PostgreSQL 15 or newer is required for the NULLS NOT DISTINCT index.
"""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

import tenant_health.core.models  # noqa: F401  registers the ORM tables on Base
from tenant_health.adapters.sources import collaborator_metadata
from tenant_health.database import Base

TEST_DATABASE_URL = os.environ.get("TENANT_HEALTH_TEST_DATABASE_URL")


async def _drop_all(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(collaborator_metadata.drop_all)


@pytest_asyncio.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    if not TEST_DATABASE_URL:
        pytest.skip("TENANT_HEALTH_TEST_DATABASE_URL is not set")

    engine = create_async_engine(TEST_DATABASE_URL)
    await _drop_all(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(collaborator_metadata.create_all)
    try:
        yield engine
    finally:
        await _drop_all(engine)
        await engine.dispose()


@pytest.fixture()
def sessions(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture()
async def session(
    sessions: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with sessions() as session:
        yield session
