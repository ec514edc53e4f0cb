"""Base cache operations - low-level Redis primitives.

Every operation degrades gracefully: when no client is available it
returns its empty result without touching the backend, and any backend
or serialization error is logged and converted to that same result.
"""

import asyncio
from collections.abc import Iterable, Sequence
from typing import Any, TypeVar

from upstash_redis.asyncio import Redis

from readmaster.core.logging import get_logger
from readmaster.services.cache.client import get_redis_client
from readmaster.services.cache.codec import CacheCodec, default_codec

logger = get_logger(__name__)

T = TypeVar("T")

# Value reported by TTL for a missing key
TTL_MISSING = -2


def _set_ok(result: Any) -> bool:
    # The REST client reports SET as True/False; raw responses use "OK"/None
    return result is True or result == "OK"


class BaseCacheOperations:
    """Low-level Redis operations with graceful degradation."""

    def __init__(
        self,
        client: Redis | None = None,
        codec: CacheCodec | None = None,
    ) -> None:
        """Initialize the cache operations.

        Args:
            client: Explicit Redis client (tests, DI). When omitted the
                process-wide client is resolved lazily on each call.
            codec: Payload serializer, JSON by default.
        """
        self._client = client
        self._codec = codec or default_codec

    @property
    def client(self) -> Redis | None:
        """The Redis client to use, or None when caching is disabled."""
        if self._client is not None:
            return self._client
        return get_redis_client()

    @property
    def is_available(self) -> bool:
        """Check if cache is available."""
        return self.client is not None

    # ========== String operations ==========

    async def get(self, key: str, refresh_ttl: int | None = None) -> Any | None:
        """Get and decode a value; optionally extend its TTL on a hit."""
        client = self.client
        if client is None:
            return None

        try:
            raw = await client.get(key)
            if raw is None:
                return None
            value = self._codec.decode(raw)
            if value is not None and refresh_ttl is not None and refresh_ttl > 0:
                await client.expire(key, refresh_ttl)
            return value
        except Exception as e:
            logger.warning("Cache get failed", key=key, error=str(e))
            return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        nx: bool = False,
        xx: bool = False,
    ) -> bool:
        """Encode and store a value.

        Args:
            key: Cache key.
            value: Any value the codec can encode.
            ttl: Seconds until expiry; None or non-positive means no expiry.
            nx: Only set if the key does not exist (first writer wins).
            xx: Only set if the key already exists.

        Returns:
            True if written; False if a NX/XX condition did not hold, the
            cache is unavailable, or the write failed.
        """
        client = self.client
        if client is None:
            return False

        if nx and xx:
            logger.warning("Cache set called with both nx and xx", key=key)
            return False

        try:
            payload = self._codec.encode(value)
            kwargs: dict[str, Any] = {}
            if ttl is not None and ttl > 0:
                kwargs["ex"] = ttl
            if nx:
                kwargs["nx"] = True
            if xx:
                kwargs["xx"] = True
            return _set_ok(await client.set(key, payload, **kwargs))
        except Exception as e:
            logger.warning("Cache set failed", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        """Delete a key; True if something was removed."""
        client = self.client
        if client is None:
            return False

        try:
            return int(await client.delete(key)) > 0
        except Exception as e:
            logger.warning("Cache delete failed", key=key, error=str(e))
            return False

    async def delete_many(self, keys: Sequence[str]) -> int:
        """Delete several keys in one call; returns how many were removed."""
        client = self.client
        if client is None or not keys:
            return 0

        try:
            return int(await client.delete(*keys))
        except Exception as e:
            logger.warning("Cache delete_many failed", key_count=len(keys), error=str(e))
            return 0

    async def exists(self, key: str) -> bool:
        """Check whether a key exists."""
        client = self.client
        if client is None:
            return False

        try:
            return int(await client.exists(key)) > 0
        except Exception as e:
            logger.warning("Cache exists check failed", key=key, error=str(e))
            return False

    async def expire(self, key: str, seconds: int) -> bool:
        """Set a TTL on an existing key; True if applied."""
        client = self.client
        if client is None:
            return False

        try:
            return bool(await client.expire(key, seconds))
        except Exception as e:
            logger.warning("Cache expire failed", key=key, ttl=seconds, error=str(e))
            return False

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds; -1 without expiry, -2 when missing."""
        client = self.client
        if client is None:
            return TTL_MISSING

        try:
            return int(await client.ttl(key))
        except Exception as e:
            logger.warning("Cache TTL check failed", key=key, error=str(e))
            return TTL_MISSING

    # ========== Batch operations ==========

    async def mget(self, keys: Sequence[str]) -> list[Any | None]:
        """Get multiple values; the result is aligned with ``keys``."""
        client = self.client
        if client is None or not keys:
            return [None] * len(keys)

        try:
            raw_values = await client.mget(*keys)
        except Exception as e:
            logger.warning("Cache mget failed", key_count=len(keys), error=str(e))
            return [None] * len(keys)

        values: list[Any | None] = []
        for key, raw in zip(keys, raw_values):
            if raw is None:
                values.append(None)
                continue
            try:
                values.append(self._codec.decode(raw))
            except Exception as e:
                logger.warning("Cache mget decode failed", key=key, error=str(e))
                values.append(None)
        # Pad if the backend returned fewer entries than requested
        values.extend([None] * (len(keys) - len(values)))
        return values

    async def mset(
        self,
        entries: Iterable[tuple[str, Any]],
        ttl: int | None = None,
    ) -> bool:
        """Set multiple key/value pairs.

        With a TTL each entry is a SET EX in one pipeline, so no key is ever
        stored without its expiry.
        """
        client = self.client
        pairs = list(entries)
        if client is None or not pairs:
            return False

        try:
            mapping = {key: self._codec.encode(value) for key, value in pairs}

            if ttl is not None and ttl > 0:
                pipeline = client.pipeline()
                for key, payload in mapping.items():
                    pipeline.set(key, payload, ex=ttl)
                await pipeline.exec()
            else:
                await client.mset(mapping)

            return True
        except Exception as e:
            logger.warning("Cache mset failed", entry_count=len(pairs), error=str(e))
            return False

    # ========== Counters ==========

    async def incr(self, key: str, amount: int = 1) -> int | None:
        """Atomically increment a counter; returns the new value."""
        client = self.client
        if client is None:
            return None

        try:
            if amount == 1:
                return int(await client.incr(key))
            return int(await client.incrby(key, amount))
        except Exception as e:
            logger.warning("Cache incr failed", key=key, amount=amount, error=str(e))
            return None

    async def decr(self, key: str, amount: int = 1) -> int | None:
        """Atomically decrement a counter; returns the new value."""
        client = self.client
        if client is None:
            return None

        try:
            if amount == 1:
                return int(await client.decr(key))
            return int(await client.decrby(key, amount))
        except Exception as e:
            logger.warning("Cache decr failed", key=key, amount=amount, error=str(e))
            return None

    # ========== Health check ==========

    async def check_health(self, timeout: float = 5.0) -> bool:
        """Check Redis connectivity with timeout."""
        client = self.client
        if client is None:
            return False

        try:
            result = await asyncio.wait_for(client.ping(), timeout=timeout)
            return bool(result)
        except asyncio.TimeoutError:
            logger.error("Redis health check timed out", timeout=timeout)
            return False
        except Exception as e:
            logger.error("Redis health check failed", error=str(e))
            return False
