"""Async Redis caching service using Upstash.

Read-through / write-invalidate caching for hot relational queries:
- Core operations (get/set/delete, batch, counters) that never raise
- get_or_set read-through helper
- SCAN-based pattern invalidation
- Deterministic key builders and TTL tiers
- with_cache / with_invalidation wrappers
- Graceful degradation when Upstash is not configured or unreachable
"""

from readmaster.services.cache.client import (
    RedisClientHolder,
    get_redis_client,
    is_redis_available,
    reset_redis_client,
)
from readmaster.services.cache.codec import CacheCodec, JsonCodec
from readmaster.services.cache.constants import CacheKeyPrefix, CacheTTL
from readmaster.services.cache.keys import (
    book_key,
    build_key,
    escape_pattern,
    guide_key,
    leaderboard_key,
    normalize_query,
    progress_key,
    search_key,
    user_key,
)
from readmaster.services.cache.service import (
    CacheService,
    get_cache_service,
    reset_cache_service,
)

__all__ = [
    # Client
    "RedisClientHolder",
    "get_redis_client",
    "is_redis_available",
    "reset_redis_client",
    # Codec
    "CacheCodec",
    "JsonCodec",
    # Constants
    "CacheKeyPrefix",
    "CacheTTL",
    # Key builders
    "build_key",
    "user_key",
    "book_key",
    "progress_key",
    "guide_key",
    "search_key",
    "leaderboard_key",
    "normalize_query",
    "escape_pattern",
    # Service
    "CacheService",
    "get_cache_service",
    "reset_cache_service",
]
