"""Main CacheService combining all cache operations."""

from readmaster.services.cache.invalidation import InvalidationMixin
from readmaster.services.cache.read_through import ReadThroughMixin


class CacheService(ReadThroughMixin, InvalidationMixin):
    """Async Redis caching service with graceful degradation.

    Combines all cache operations through multiple inheritance:
    - BaseCacheOperations: get/set/delete, batch ops, counters, health
    - InvalidationMixin: SCAN-based pattern invalidation
    - ReadThroughMixin: get_or_set, with_cache, with_invalidation
    """

    pass


# Global cache service instance
_cache_service: CacheService | None = None


def get_cache_service() -> CacheService:
    """Get or create the global cache service instance."""
    global _cache_service

    if _cache_service is None:
        _cache_service = CacheService()

    return _cache_service


def reset_cache_service() -> None:
    """Drop the global cache service instance."""
    global _cache_service
    _cache_service = None
