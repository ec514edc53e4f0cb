"""Services module exports."""

from readmaster.services.cache import CacheService, get_cache_service
from readmaster.services.db_cache import DbCache, DbCacheKey, get_db_cache

__all__ = [
    "CacheService",
    "get_cache_service",
    "DbCache",
    "DbCacheKey",
    "get_db_cache",
]
