"""Test configuration and fixtures.

Provides isolated test fixtures for:
- An in-memory stand-in for the Upstash async client
- Cache services wired to that fake (or to nothing, for disabled mode)
- A fresh SQLite database file per test
- HTTP client against the FastAPI app
"""

import re
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from readmaster.core.config import get_settings
from readmaster.db.models import Base, User, UserStats
from readmaster.services.cache import CacheService, reset_cache_service, reset_redis_client
from readmaster.services.db_cache import DbCache, get_db_cache

TEST_DATABASE_URL = "sqlite+aiosqlite://"


# =============================================================================
# Fake Upstash client
# =============================================================================

def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Redis-style glob (``*``, ``?``, backslash escapes) to a regex."""
    out: list[str] = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            out.append(re.escape(next(chars, "\\")))
        elif ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return re.compile("".join(out) + r"\Z", re.DOTALL)


class FakePipeline:
    def __init__(self, redis: "FakeUpstashRedis") -> None:
        self._redis = redis
        self._commands: list[tuple[str, tuple[Any, ...]]] = []

    def expire(self, key: str, seconds: int) -> "FakePipeline":
        self._commands.append(("expire", (key, seconds)))
        return self

    def set(self, key: str, value: Any, ex: int | None = None) -> "FakePipeline":
        self._commands.append(("set", (key, value, ex)))
        return self

    async def exec(self) -> list[Any]:
        results = []
        for name, args in self._commands:
            results.append(await getattr(self._redis, name)(*args))
        return results


class FakeUpstashRedis:
    """Dict-backed subset of ``upstash_redis.asyncio.Redis``.

    Values are stored as the strings the cache layer writes. TTLs are
    recorded but never elapse. Any method name placed in ``failures``
    raises ``ConnectionError`` when called.
    """

    def __init__(self) -> None:
        self.store: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}
        self.failures: set[str] = set()
        self.calls: list[str] = []
        self._scan_snapshots: dict[str | None, list[str]] = {}

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise ConnectionError(f"{name} failed")

    def _drop(self, key: str) -> bool:
        self.ttls.pop(key, None)
        return self.store.pop(key, None) is not None

    async def get(self, key: str) -> Any:
        self._record("get")
        return self.store.get(key)

    async def set(
        self,
        key: str,
        value: Any,
        ex: int | None = None,
        nx: bool = False,
        xx: bool = False,
    ) -> bool:
        self._record("set")
        if nx and key in self.store:
            return False
        if xx and key not in self.store:
            return False
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        else:
            self.ttls.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        self._record("delete")
        return sum(1 for key in keys if self._drop(key))

    async def exists(self, *keys: str) -> int:
        self._record("exists")
        return sum(1 for key in keys if key in self.store)

    async def expire(self, key: str, seconds: int) -> bool:
        self._record("expire")
        if key not in self.store:
            return False
        self.ttls[key] = seconds
        return True

    async def ttl(self, key: str) -> int:
        self._record("ttl")
        if key not in self.store:
            return -2
        return self.ttls.get(key, -1)

    async def mget(self, *keys: str) -> list[Any]:
        self._record("mget")
        return [self.store.get(key) for key in keys]

    async def mset(self, values: dict[str, Any]) -> bool:
        self._record("mset")
        self.store.update(values)
        return True

    async def incrby(self, key: str, increment: int) -> int:
        self._record("incrby")
        value = int(self.store.get(key, 0)) + increment
        self.store[key] = str(value)
        return value

    async def incr(self, key: str) -> int:
        return await self.incrby(key, 1)

    async def decrby(self, key: str, decrement: int) -> int:
        return await self.incrby(key, -decrement)

    async def decr(self, key: str) -> int:
        return await self.incrby(key, -1)

    async def scan(
        self,
        cursor: int,
        match: str | None = None,
        count: int | None = None,
    ) -> tuple[int, list[str]]:
        """Page through a per-pattern snapshot taken at cursor 0; the cursor is an offset.

        Keys deleted mid-iteration don't shift later pages, matching the
        SCAN guarantee for keys present the whole time.
        """
        self._record("scan")
        if cursor == 0:
            self._scan_snapshots[match] = sorted(self.store)
        keys = self._scan_snapshots[match]
        batch_size = count or 10
        page = [key for key in keys[cursor:cursor + batch_size] if key in self.store]
        next_cursor = cursor + batch_size if cursor + batch_size < len(keys) else 0
        if match is not None:
            regex = _glob_to_regex(match)
            page = [key for key in page if regex.match(key)]
        return next_cursor, page

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)

    async def ping(self) -> str:
        self._record("ping")
        return "PONG"


# =============================================================================
# Global state isolation
# =============================================================================

@pytest.fixture(autouse=True)
def _isolate_globals(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Start every test with caching unconfigured and no cached singletons."""
    monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "")
    monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "")
    monkeypatch.setenv("DATABASE_URL", TEST_DATABASE_URL)

    def _reset() -> None:
        get_settings.cache_clear()
        reset_redis_client()
        reset_cache_service()
        get_db_cache.cache_clear()

    _reset()
    yield
    _reset()


# =============================================================================
# Cache fixtures
# =============================================================================

@pytest.fixture
def fake_redis() -> FakeUpstashRedis:
    return FakeUpstashRedis()


@pytest.fixture
def cache(fake_redis: FakeUpstashRedis) -> CacheService:
    """CacheService talking to the in-memory fake."""
    return CacheService(client=fake_redis)  # type: ignore[arg-type]


@pytest.fixture
def disabled_cache() -> CacheService:
    """CacheService with Upstash unconfigured."""
    return CacheService()


# =============================================================================
# Database fixtures
# =============================================================================

@pytest_asyncio.fixture
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh file-backed schema for each test."""
    db_path = tmp_path / "test.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def test_db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def db_cache(
    cache: CacheService,
    session_factory: async_sessionmaker[AsyncSession],
) -> DbCache:
    return DbCache(cache=cache, session_factory=session_factory)


@pytest_asyncio.fixture
async def test_user(test_db: AsyncSession) -> User:
    user = User(
        clerk_id="clerk_reader",
        email="reader@example.com",
        username="reader",
        display_name="Avid Reader",
    )
    test_db.add(user)
    await test_db.commit()
    test_db.add(UserStats(user_id=user.id, total_xp=120, level=2))
    await test_db.commit()
    await test_db.refresh(user)
    return user


@pytest_asyncio.fixture
async def second_user(test_db: AsyncSession) -> User:
    user = User(
        clerk_id="clerk_friend",
        email="friend@example.com",
        username="friend",
    )
    test_db.add(user)
    await test_db.commit()
    test_db.add(UserStats(user_id=user.id))
    await test_db.commit()
    await test_db.refresh(user)
    return user


# =============================================================================
# HTTP client
# =============================================================================

@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async client against the app; lifespan is not run."""
    from readmaster.main import app

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
