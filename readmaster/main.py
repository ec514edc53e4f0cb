"""FastAPI application entry point."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from readmaster.api import health_router
from readmaster.core.config import get_settings
from readmaster.core.exceptions import register_exception_handlers
from readmaster.core.logging import get_logger, setup_logging
from readmaster.core.tasks import drain_background_tasks
from readmaster.db.session import close_db, init_db
from readmaster.services.cache import get_cache_service, reset_redis_client

# Initialize logging first
setup_logging()
logger = get_logger(__name__)

DB_INIT_ATTEMPTS = 3


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events.

    Startup:
    - Initialize database tables, retrying transient connection failures

    Shutdown:
    - Wait for pending cache invalidations (bounded by a timeout)
    - Drop the Redis client
    - Close database connections
    """
    settings = get_settings()

    logger.info(
        "Starting application",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        cache_enabled=get_cache_service().is_available,
    )

    for attempt in range(DB_INIT_ATTEMPTS):
        try:
            await init_db()
            break
        except Exception as exc:
            if attempt == DB_INIT_ATTEMPTS - 1:
                logger.error(
                    "Failed to initialize database",
                    attempts=DB_INIT_ATTEMPTS,
                    error=str(exc),
                )
                raise
            logger.warning(
                "Database init failed, retrying...",
                attempt=attempt + 1,
                error=str(exc),
            )
            await asyncio.sleep(2**attempt)

    yield

    logger.info("Shutting down application")

    drained = await drain_background_tasks(timeout=settings.background_drain_timeout)
    if drained:
        logger.info("Background tasks drained", count=drained)

    reset_redis_client()

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Read-through caching layer for the Read Master reading platform",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    register_exception_handlers(app)

    app.include_router(health_router)

    return app


# Create application instance
app = create_app()
