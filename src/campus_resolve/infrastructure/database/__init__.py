"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncGenerator, AsyncIterator, Callable, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from campus_resolve.config import Settings, settings as default_settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    """
    pass


_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If engine has not been initialized
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def init_database(
    app_settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
) -> AsyncEngine:
    """
    Initialize the database engine and session maker.

    Args:
        app_settings: Settings to build the engine from
        engine: Pre-built engine (scripts and tests)

    Returns:
        AsyncEngine: The initialized engine
    """
    global _engine, _session_maker
    app_settings = app_settings or default_settings

    if engine is None:
        # asyncpg expects ssl= rather than libpq's sslmode=
        database_url = app_settings.database_url.replace("sslmode=", "ssl=")
        engine_kwargs = {"echo": app_settings.debug, "pool_pre_ping": True}
        if database_url.startswith("postgresql"):
            engine_kwargs["pool_size"] = app_settings.db_pool_size
            engine_kwargs["max_overflow"] = app_settings.db_max_overflow
        engine = create_async_engine(database_url, **engine_kwargs)

    _engine = engine
    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return _engine


async def close_database() -> None:
    """Dispose of the engine. Called during application shutdown."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async generator for database sessions, for use with FastAPI's Depends().

    Commits when the request handler returns normally, rolls back otherwise.

    Yields:
        AsyncSession: SQLAlchemy async session
    """
    async with get_session_context() as session:
        yield session


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.

    For use in background jobs (outbox hooks, scheduled sweeps) and scripts.

    Usage:
        async with get_session_context() as session:
            await sweep.run(session)
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with _session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Opens a SAVEPOINT, e.g. ``session.begin_nested``
SavepointFactory = Callable[[], AsyncContextManager[Any]]


@asynccontextmanager
async def no_savepoint() -> AsyncIterator[None]:
    """Stand-in for callers that run outside a session."""
    yield


def import_models() -> None:
    """Register every mapped table on Base.metadata."""
    from campus_resolve.access.infrastructure import models as _access  # noqa: F401
    from campus_resolve.tickets.infrastructure import models as _tickets  # noqa: F401
    from campus_resolve.escalation.infrastructure import models as _escalation  # noqa: F401
    from campus_resolve.notifications.infrastructure import models as _notifications  # noqa: F401


async def create_tables() -> None:
    """
    Create all database tables.

    Development and tests only; deployments migrate their schema separately.
    """
    import_models()
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
