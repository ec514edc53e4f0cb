"""Tests for SCAN-based pattern invalidation."""

from unittest.mock import patch

import pytest

from readmaster.services.cache import CacheService
from tests.conftest import FakeUpstashRedis

pytestmark = pytest.mark.asyncio


async def _seed(cache: CacheService, *keys: str) -> None:
    for key in keys:
        await cache.set(key, 1)


async def test_deletes_only_matching_keys(cache: CacheService):
    await _seed(cache, "user:1:profile", "user:1:stats", "user:2:profile")

    assert await cache.invalidate_pattern("user:1:*") == 2

    assert await cache.exists("user:1:profile") is False
    assert await cache.exists("user:1:stats") is False
    assert await cache.exists("user:2:profile") is True


async def test_no_matches(cache: CacheService):
    await _seed(cache, "book:1")
    assert await cache.invalidate_pattern("user:*") == 0


async def test_walks_every_scan_page(cache: CacheService, fake_redis: FakeUpstashRedis):
    keys = [f"search:q{i}" for i in range(25)] + ["user:1"]
    await _seed(cache, *keys)

    with patch.object(CacheService, "scan_batch_size", new=4):
        assert await cache.invalidate_pattern("search:*") == 25

    assert fake_redis.calls.count("scan") > 1
    assert list(fake_redis.store) == ["user:1"]


async def test_escaped_id_matches_literally(cache: CacheService):
    await _seed(cache, "user:a*b:stats", "user:axxb:stats")

    from readmaster.services.cache import escape_pattern

    assert await cache.invalidate_pattern(f"user:{escape_pattern('a*b')}:*") == 1
    assert await cache.exists("user:axxb:stats") is True


async def test_partial_failure_returns_count_so_far(cache: CacheService, fake_redis: FakeUpstashRedis):
    await _seed(cache, *(f"list:{i:02d}" for i in range(6)))
    original_delete = fake_redis.delete
    deletes = 0

    async def flaky_delete(*keys: str) -> int:
        nonlocal deletes
        deletes += 1
        if deletes > 1:
            raise ConnectionError("lost connection")
        return await original_delete(*keys)

    fake_redis.delete = flaky_delete  # type: ignore[method-assign]

    with patch.object(CacheService, "scan_batch_size", new=3):
        assert await cache.invalidate_pattern("list:*") == 3

    assert len(fake_redis.store) == 3


async def test_scan_failure_returns_zero(cache: CacheService, fake_redis: FakeUpstashRedis):
    await _seed(cache, "user:1:a")
    fake_redis.failures.add("scan")

    assert await cache.invalidate_pattern("user:1:*") == 0
    assert await cache.exists("user:1:a") is True


async def test_invalidate_user(cache: CacheService):
    await _seed(cache, "user:u1", "user:u1:stats", "progress:u1:b1", "user:u10:stats")

    assert await cache.invalidate_user("u1") == 3
    assert await cache.exists("user:u10:stats") is True


async def test_invalidate_book(cache: CacheService):
    await _seed(cache, "book:b1", "book:b1:chapters", "book:b2")

    assert await cache.invalidate_book("b1") == 2
    assert await cache.exists("book:b2") is True
