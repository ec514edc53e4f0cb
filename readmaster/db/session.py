"""Async database session management with connection pooling."""

import asyncio
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from readmaster.core.config import Settings, get_settings
from readmaster.core.logging import get_logger

logger = get_logger(__name__)

SERVERLESS_HOSTS = ("neon.tech",)
POOL_RECYCLE_SECONDS = 1800

# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(url: str, settings: Settings) -> dict[str, Any]:
    """Keyword arguments for ``create_async_engine`` given the backend URL.

    SQLite gets no pool tuning. Serverless Postgres hosts pool on their
    side, so they get ``NullPool``; any other server gets a bounded pool.
    Postgres drivers run with prepared statement caches off so the engine
    also works behind transaction-mode poolers.
    """
    options: dict[str, Any] = {"echo": settings.db_echo, "pool_pre_ping": True}

    if url.startswith("sqlite"):
        return options

    options["connect_args"] = {
        "statement_cache_size": 0,
        "prepared_statement_cache_size": 0,
    }
    if any(host in url for host in SERVERLESS_HOSTS):
        options["poolclass"] = NullPool
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=POOL_RECYCLE_SECONDS,
        )
    return options


def get_engine() -> AsyncEngine:
    """Get or create the async database engine."""
    global _engine

    if _engine is None:
        settings = get_settings()
        url = settings.processed_database_url
        options = engine_options(url, settings)
        _engine = create_async_engine(url, **options)
        logger.info(
            "Database engine created",
            pooled="pool_size" in options,
            serverless=options.get("poolclass") is NullPool,
        )

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    return _session_factory


async def init_db() -> None:
    """Create tables that don't exist yet."""
    from readmaster.db.models import Base

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables initialized")


async def close_db() -> None:
    """Close database connections and dispose of the engine."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed")


async def check_db_health(timeout: float = 5.0) -> bool:
    """Check database connectivity with timeout."""

    async def _check() -> bool:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    try:
        return await asyncio.wait_for(_check(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("Database health check timed out", timeout=timeout)
        return False
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return False
