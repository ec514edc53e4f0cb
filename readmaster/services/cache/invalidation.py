"""Pattern-based bulk invalidation."""

from readmaster.core.config import get_settings
from readmaster.core.logging import get_logger
from readmaster.services.cache.base import BaseCacheOperations
from readmaster.services.cache.constants import CacheKeyPrefix
from readmaster.services.cache.keys import build_key, escape_pattern

logger = get_logger(__name__)


class InvalidationMixin(BaseCacheOperations):
    """Delete whole namespaces without knowing the exact key set."""

    @property
    def scan_batch_size(self) -> int:
        return get_settings().cache_scan_batch_size

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern.

        Walks the keyspace with SCAN and deletes each batch's matches as it
        goes. On failure the remaining work is abandoned and the number of
        keys deleted so far is returned; leftovers expire through their TTL.
        """
        client = self.client
        if client is None:
            return 0

        deleted = 0
        cursor = 0
        try:
            while True:
                cursor, keys = await client.scan(
                    cursor,
                    match=pattern,
                    count=self.scan_batch_size,
                )
                if keys:
                    deleted += int(await client.delete(*keys))
                if int(cursor) == 0:
                    break
        except Exception as e:
            logger.warning(
                "Cache pattern invalidation failed",
                pattern=pattern,
                keys_deleted=deleted,
                error=str(e),
            )
            return deleted

        if deleted:
            logger.info("Cache invalidation completed", pattern=pattern, keys_deleted=deleted)
        return deleted

    async def _invalidate_entity(self, prefix: str, entity_id: str) -> int:
        # <prefix>:<id> itself plus any namespaced key with <id> as a segment
        pattern_deleted = await self.invalidate_pattern(f"*:{escape_pattern(entity_id)}:*")
        key_deleted = 1 if await self.delete(build_key(prefix, entity_id)) else 0
        return pattern_deleted + key_deleted

    async def invalidate_user(self, user_id: str) -> int:
        """Invalidate the generic ``user`` namespace entries for a user."""
        return await self._invalidate_entity(CacheKeyPrefix.USER, user_id)

    async def invalidate_book(self, book_id: str) -> int:
        """Invalidate the generic ``book`` namespace entries for a book."""
        return await self._invalidate_entity(CacheKeyPrefix.BOOK, book_id)
