# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Async SQLAlchemy throughout: asyncpg for PostgreSQL, aiosqlite for local
# runs and tests. The default engine is created lazily so importing this
# module never needs a database driver.
#
# SESSION LIFECYCLE:
# The KnowledgeStore owns its sessions. Each store operation opens a
# session from the factory, commits on success and rolls back on error.
#
# Celery tasks run their own event loop per task (asyncio.run), so they
# build a throwaway engine with NullPool via create_engine_for_url() rather
# than sharing pooled connections bound to another loop.
# =============================================================================

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.config import settings
from app.db.models import Base

_async_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for_url(
    database_url: str,
    echo: bool = False,
    use_null_pool: bool = False,
) -> AsyncEngine:
    """
    Create an async engine for `database_url`.

    - pool_size=5 / max_overflow=10 for server-backed databases.
    - NullPool when connections must not outlive one event loop.
    """
    kwargs: dict = {"echo": echo}
    if use_null_pool:
        kwargs["poolclass"] = NullPool
    elif not database_url.startswith("sqlite"):
        kwargs["pool_size"] = 5
        kwargs["max_overflow"] = 10
    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to `engine`.

    expire_on_commit=False keeps attributes readable after commit, outside
    the session (returned rows are used by callers after the session closes).
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def get_async_engine() -> AsyncEngine:
    """Lazily create and cache the application engine."""
    global _async_engine
    if _async_engine is None:
        _async_engine = create_engine_for_url(settings.database_url, echo=settings.debug)
    return _async_engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Lazily create and cache the application session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = create_session_factory(get_async_engine())
    return _async_session_factory


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Close pooled connections of the application engine (shutdown hook)."""
    global _async_engine, _async_session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_session_factory = None
