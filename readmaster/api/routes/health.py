"""Health check endpoints."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from readmaster.api.schemas import HealthResponse, ServiceHealth
from readmaster.core.config import get_settings
from readmaster.db.session import check_db_health
from readmaster.services.cache import CacheService, get_cache_service

router = APIRouter(tags=["Health"])

HEALTH_CHECK_TIMEOUT = 5.0


async def _timed_health_check(
    name: str,
    check_fn: Callable[[], Awaitable[bool]],
    timeout: float = HEALTH_CHECK_TIMEOUT,
) -> tuple[str, bool, float, str | None]:
    """Execute a health check and measure its latency with timeout.

    Returns:
        Tuple of (name, healthy, latency_ms, error_message)
    """
    start = time.perf_counter()
    try:
        result = await asyncio.wait_for(check_fn(), timeout=timeout)
        latency = (time.perf_counter() - start) * 1000
        return (name, bool(result), latency, None)
    except asyncio.TimeoutError:
        latency = (time.perf_counter() - start) * 1000
        return (name, False, latency, f"Health check timed out after {timeout}s")
    except Exception as e:
        latency = (time.perf_counter() - start) * 1000
        return (name, False, latency, str(e))


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Comprehensive health check",
    response_description="Health status of the database and the cache",
)
async def health_check(
    cache_service: Annotated[CacheService, Depends(get_cache_service)],
) -> HealthResponse:
    """
    Health check endpoint for monitoring.

    - **Database**: connectivity and response time; failure makes the
      service `unhealthy`
    - **Cache**: Upstash connectivity and response time; a missing or
      failing cache only makes the service `degraded`

    Checks run in parallel with per-service latency tracking.
    """
    settings = get_settings()
    services: dict[str, ServiceHealth] = {}
    overall_status = "healthy"

    tasks = [_timed_health_check("database", check_db_health)]
    if cache_service.is_available:
        tasks.append(_timed_health_check("cache", cache_service.check_health))

    results = await asyncio.gather(*tasks)

    for name, healthy, latency, error in results:
        if name == "database":
            details: dict[str, Any] = {"type": "sql"}
            if error:
                details["error"] = error
            services["database"] = ServiceHealth(
                status="healthy" if healthy else "unhealthy",
                latency_ms=round(latency, 2),
                details=details,
            )
            if not healthy:
                overall_status = "unhealthy"

        elif name == "cache":
            cache_details: dict[str, Any] = {"type": "redis", "provider": "upstash"}
            if error:
                cache_details["error"] = error
            services["cache"] = ServiceHealth(
                status="healthy" if healthy else "degraded",
                latency_ms=round(latency, 2),
                details=cache_details,
            )
            if not healthy and overall_status == "healthy":
                overall_status = "degraded"

    # Cache not configured: the app still serves, straight from the store
    if "cache" not in services:
        services["cache"] = ServiceHealth(
            status="degraded",
            details={"type": "redis", "provider": "not configured"},
        )
        if overall_status == "healthy":
            overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        services=services,
    )


@router.get(
    "/health/live",
    summary="Liveness probe",
    response_description="Simple liveness check for orchestrators",
)
async def liveness() -> dict[str, str]:
    """Returns 200 while the process is running; touches no dependencies."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
