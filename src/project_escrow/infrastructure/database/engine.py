"""Engine and session plumbing shared by the API, the simulation and tests.

``build_engine`` picks pool settings from the URL: PostgreSQL gets the
configured connection pool, SQLite (tests, local simulation) a single
shared connection so ``:memory:`` databases survive across sessions.

The process-wide engine is created on first use and disposed by
``close_db`` during application shutdown.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from project_escrow.config import Settings, get_settings
from project_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(url: str, settings: Settings | None = None) -> AsyncEngine:
    """Create an async engine for ``url`` with dialect-appropriate pooling."""
    options: dict[str, Any] = {}
    if url.startswith("sqlite"):
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    elif settings is not None:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
        )
    if settings is not None:
        options["echo"] = settings.db_echo_sql
    return create_async_engine(url, **options)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows stay readable after commit; handlers return them to the caller.
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    from project_escrow.infrastructure.database.orm_models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url, settings)
        logger.info(
            "database.engine_created",
            dialect=_engine.dialect.name,
            pool_size=settings.db_pool_size,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request; roll back if the handler raises.

    Handlers commit explicitly so that notifications only leave after the
    ledger and project rows are durable.
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Open the engine; create tables only in development."""
    settings = get_settings()
    engine = get_engine()
    if not settings.is_development:
        logger.info("database.schema_managed_by_alembic")
        return
    await create_schema(engine)
    logger.info("database.tables_created")


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    logger.info("database.engine_disposed")
    _engine = None
    _session_factory = None
