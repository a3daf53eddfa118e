"""Async database plumbing for the Tenant Health Engine.

Holds the declarative Base, a process-wide async engine and session
factory, and the FastAPI session dependency. Call init_database() once at
startup (the API lifespan and each Celery worker do this).
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tenant_health.observability import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for Tenant Health ORM models."""


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_database(url: str, pool_size: int = 10, echo: bool = False) -> AsyncEngine:
    """Create the async engine and session factory.

    Args:
        url: SQLAlchemy async URL, e.g. ``postgresql+asyncpg://...``.
        pool_size: Connection pool size.
        echo: Log emitted SQL.

    Returns:
        The configured AsyncEngine.
    """
    global _engine, _session_factory

    _engine = create_async_engine(url, pool_size=pool_size, echo=echo, pool_pre_ping=True)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    logger.info("Database initialised", pool_size=pool_size)
    return _engine


async def dispose_database() -> None:
    """Dispose the engine's connection pool."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory.

    Raises:
        RuntimeError: If init_database() has not been called.
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialised; call init_database() first")
    return _session_factory


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Transactional session scope: commit on success, roll back on error."""
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a transactional session per request."""
    async with session_scope() as session:
        yield session
