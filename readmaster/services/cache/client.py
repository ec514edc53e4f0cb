"""Process-wide Upstash Redis client.

The REST client is created lazily on first use and shared by every
caller. Missing credentials are a supported "cache disabled" mode: the
holder hands out ``None`` instead of raising.
"""

import threading

from upstash_redis.asyncio import Redis

from readmaster.core.config import get_settings
from readmaster.core.logging import get_logger

logger = get_logger(__name__)


class RedisClientHolder:
    """Lazily built, resettable singleton around the Upstash client."""

    def __init__(self) -> None:
        self._client: Redis | None = None
        self._initialized = False
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        """True iff both Upstash credentials are configured (no network call)."""
        return get_settings().redis_available

    def get_client(self) -> Redis | None:
        """Return the shared client, building it on first call.

        Concurrent first callers block on the lock; whoever wins builds the
        client and the rest reuse it.
        """
        if self._initialized:
            return self._client

        with self._lock:
            if not self._initialized:
                self._client = self._build()
                self._initialized = True
        return self._client

    def reset(self) -> None:
        """Drop the client so the next ``get_client`` rebuilds it."""
        with self._lock:
            self._client = None
            self._initialized = False

    def _build(self) -> Redis | None:
        settings = get_settings()

        if not settings.redis_available:
            logger.info(
                "Redis cache not configured, caching disabled",
                has_url=bool(settings.upstash_redis_rest_url),
                has_token=bool(settings.upstash_redis_rest_token),
            )
            return None

        try:
            client = Redis(
                url=settings.upstash_redis_rest_url,
                token=settings.upstash_redis_rest_token,
            )
        except Exception as e:
            logger.warning("Failed to initialize Redis cache", error=str(e))
            return None

        logger.info("Redis cache initialized")
        return client


_holder = RedisClientHolder()


def get_redis_client() -> Redis | None:
    """Get the process Redis client, or None when caching is disabled."""
    return _holder.get_client()


def is_redis_available() -> bool:
    """Check whether Redis credentials are configured."""
    return _holder.is_available()


def reset_redis_client() -> None:
    """Forget the process Redis client (configuration changes, tests)."""
    _holder.reset()
