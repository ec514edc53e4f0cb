"""Database query caching.

Read-through caching for hot relational queries plus the invalidation
routines write paths call after a successful commit. This layer adds no
caching mechanism of its own: every query is ``get_or_set`` with a fixed
key shape, a store query and a TTL tier chosen by how volatile the data is.

Invalidate only after the mutation has committed. Invalidating earlier
lets a concurrent reader repopulate the entry with pre-mutation data.
"""

import asyncio
from datetime import datetime, timezone
from functools import lru_cache
from typing import TypedDict

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from readmaster.core.logging import get_logger
from readmaster.db.models import (
    ACTIVE_FLASHCARD_STATUSES,
    Book,
    Flashcard,
    Follow,
    ForumPost,
    ReadingProgress,
    User,
    UserAchievement,
    UserStats,
)
from readmaster.db.session import get_session_factory
from readmaster.services.cache import CacheService, CacheTTL, build_key, escape_pattern, get_cache_service

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


class DbCacheKey:
    """Key namespaces for cached database queries."""

    USER = "db:user"  # db:user:{id}
    USER_CLERK = "db:user-clerk"  # db:user-clerk:{clerk_id}
    USER_STATS = "db:user-stats"  # db:user-stats:{id}
    USER_BOOKS = "db:user-books"  # db:user-books:{id}:{status}:{page}:{limit}
    USER_BOOKS_COUNT = "db:user-books-count"  # db:user-books-count:{id}[:{status}]
    BOOK = "db:book"  # db:book:{id}
    BOOK_PROGRESS = "db:book-progress"  # db:book-progress:{book_id}:{user_id}
    FLASHCARDS_DUE = "db:flashcards:due"
    FLASHCARDS_COUNT = "db:flashcards:count"
    ACHIEVEMENTS = "db:achievements"  # db:achievements:{id}:count
    FOLLOWING_COUNT = "db:following:count"
    FOLLOWERS_COUNT = "db:followers:count"
    FORUM_CATEGORY_COUNT = "db:forum:category:count"


class CachedUser(TypedDict):
    id: str
    clerk_id: str
    email: str
    username: str | None
    display_name: str | None
    avatar_url: str | None
    tier: str
    ai_enabled: bool
    profile_public: bool
    show_stats: bool
    show_activity: bool
    created_at: str


class CachedUserStats(TypedDict):
    total_xp: int
    level: int
    current_streak: int
    longest_streak: int
    books_completed: int
    total_reading_time: int
    total_words_read: int
    followers_count: int
    following_count: int


class CachedProgress(TypedDict):
    percentage: float
    last_read_at: str | None


class CachedBookSummary(TypedDict):
    id: str
    title: str
    author: str | None
    cover_image: str | None
    status: str
    genre: str | None
    tags: list[str]
    word_count: int | None
    created_at: str
    updated_at: str
    progress: CachedProgress | None


def db_key(prefix: str, *parts: str | int) -> str:
    """Build a database cache key."""
    return build_key(prefix, *parts)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _user_to_cache(user: User) -> CachedUser:
    return {
        "id": user.id,
        "clerk_id": user.clerk_id,
        "email": user.email,
        "username": user.username,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
        "tier": user.tier,
        "ai_enabled": user.ai_enabled,
        "profile_public": user.profile_public,
        "show_stats": user.show_stats,
        "show_activity": user.show_activity,
        "created_at": user.created_at.isoformat(),
    }


def _book_to_cache(book: Book, progress: ReadingProgress | None) -> CachedBookSummary:
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "cover_image": book.cover_image,
        "status": book.status,
        "genre": book.genre,
        "tags": list(book.tags or []),
        "word_count": book.word_count,
        "created_at": book.created_at.isoformat(),
        "updated_at": book.updated_at.isoformat(),
        "progress": (
            {"percentage": progress.percentage, "last_read_at": _iso(progress.last_read_at)}
            if progress is not None
            else None
        ),
    }


class DbCache:
    """Cached database queries and their invalidation routines."""

    def __init__(
        self,
        cache: CacheService | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._cache = cache
        self._session_factory = session_factory

    @property
    def cache(self) -> CacheService:
        return self._cache if self._cache is not None else get_cache_service()

    def _session(self) -> AsyncSession:
        factory = self._session_factory or get_session_factory()
        return factory()

    async def _count(self, model: type, *criteria: object) -> int:
        async with self._session() as session:
            result = await session.scalar(
                select(func.count()).select_from(model).where(*criteria)
            )
        return int(result or 0)

    # ========== Users ==========

    async def get_user_by_id(self, user_id: str) -> CachedUser | None:
        """Get an active user by primary key."""

        async def fetch() -> CachedUser | None:
            async with self._session() as session:
                user = await session.scalar(
                    select(User).where(User.id == user_id, User.deleted_at.is_(None))
                )
            return _user_to_cache(user) if user else None

        return await self.cache.get_or_set(
            db_key(DbCacheKey.USER, user_id), fetch, ttl=CacheTTL.MEDIUM
        )

    async def get_user_by_clerk_id(self, clerk_id: str) -> CachedUser | None:
        """Get an active user by auth-provider id."""

        async def fetch() -> CachedUser | None:
            async with self._session() as session:
                user = await session.scalar(
                    select(User).where(User.clerk_id == clerk_id, User.deleted_at.is_(None))
                )
            return _user_to_cache(user) if user else None

        return await self.cache.get_or_set(
            db_key(DbCacheKey.USER_CLERK, clerk_id), fetch, ttl=CacheTTL.MEDIUM
        )

    async def get_user_stats(self, user_id: str) -> CachedUserStats | None:
        async def fetch() -> CachedUserStats | None:
            async with self._session() as session:
                stats = await session.get(UserStats, user_id)
            if stats is None:
                return None
            return {
                "total_xp": stats.total_xp,
                "level": stats.level,
                "current_streak": stats.current_streak,
                "longest_streak": stats.longest_streak,
                "books_completed": stats.books_completed,
                "total_reading_time": stats.total_reading_time,
                "total_words_read": stats.total_words_read,
                "followers_count": stats.followers_count,
                "following_count": stats.following_count,
            }

        return await self.cache.get_or_set(
            db_key(DbCacheKey.USER_STATS, user_id), fetch, ttl=CacheTTL.SHORT
        )

    # ========== Books ==========

    async def get_user_books(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        status: str | None = None,
    ) -> list[CachedBookSummary]:
        """One page of a user's library, most recently updated first."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        key = db_key(DbCacheKey.USER_BOOKS, user_id, status or "all", page, limit)

        async def fetch() -> list[CachedBookSummary]:
            criteria = [Book.user_id == user_id, Book.deleted_at.is_(None)]
            if status:
                criteria.append(Book.status == status)

            query = (
                select(Book, ReadingProgress)
                .outerjoin(
                    ReadingProgress,
                    and_(
                        ReadingProgress.book_id == Book.id,
                        ReadingProgress.user_id == user_id,
                    ),
                )
                .where(*criteria)
                .order_by(Book.updated_at.desc(), Book.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            async with self._session() as session:
                rows = (await session.execute(query)).all()
            return [_book_to_cache(book, progress) for book, progress in rows]

        return await self.cache.get_or_set(key, fetch, ttl=CacheTTL.SHORT)

    async def get_user_books_count(self, user_id: str, status: str | None = None) -> int:
        key = (
            db_key(DbCacheKey.USER_BOOKS_COUNT, user_id, status)
            if status
            else db_key(DbCacheKey.USER_BOOKS_COUNT, user_id)
        )

        async def fetch() -> int:
            criteria = [Book.user_id == user_id, Book.deleted_at.is_(None)]
            if status:
                criteria.append(Book.status == status)
            return await self._count(Book, *criteria)

        return await self.cache.get_or_set(key, fetch, ttl=CacheTTL.SHORT)

    async def get_book_by_id(
        self, book_id: str, user_id: str | None = None
    ) -> CachedBookSummary | None:
        """Get a book; with ``user_id`` the summary includes that user's progress."""
        key = (
            db_key(DbCacheKey.BOOK_PROGRESS, book_id, user_id)
            if user_id
            else db_key(DbCacheKey.BOOK, book_id)
        )

        async def fetch() -> CachedBookSummary | None:
            async with self._session() as session:
                book = await session.scalar(
                    select(Book).where(Book.id == book_id, Book.deleted_at.is_(None))
                )
                if book is None:
                    return None
                progress = None
                if user_id:
                    progress = await session.scalar(
                        select(ReadingProgress).where(
                            ReadingProgress.book_id == book_id,
                            ReadingProgress.user_id == user_id,
                        )
                    )
            return _book_to_cache(book, progress)

        return await self.cache.get_or_set(key, fetch, ttl=CacheTTL.SHORT)

    # ========== Flashcards ==========

    async def get_due_flashcards_count(self, user_id: str) -> int:
        """Cards due for review now; short TTL since due dates roll over."""

        async def fetch() -> int:
            return await self._count(
                Flashcard,
                Flashcard.user_id == user_id,
                Flashcard.status.in_(ACTIVE_FLASHCARD_STATUSES),
                Flashcard.due_date <= datetime.now(timezone.utc),
                Flashcard.deleted_at.is_(None),
            )

        return await self.cache.get_or_set(
            db_key(DbCacheKey.FLASHCARDS_DUE, user_id), fetch, ttl=CacheTTL.VERY_SHORT
        )

    async def get_flashcards_count(self, user_id: str) -> int:
        async def fetch() -> int:
            return await self._count(
                Flashcard, Flashcard.user_id == user_id, Flashcard.deleted_at.is_(None)
            )

        return await self.cache.get_or_set(
            db_key(DbCacheKey.FLASHCARDS_COUNT, user_id), fetch, ttl=CacheTTL.SHORT
        )

    # ========== Social ==========

    async def get_followers_count(self, user_id: str) -> int:
        async def fetch() -> int:
            return await self._count(Follow, Follow.following_id == user_id)

        return await self.cache.get_or_set(
            db_key(DbCacheKey.FOLLOWERS_COUNT, user_id), fetch, ttl=CacheTTL.SHORT
        )

    async def get_following_count(self, user_id: str) -> int:
        async def fetch() -> int:
            return await self._count(Follow, Follow.follower_id == user_id)

        return await self.cache.get_or_set(
            db_key(DbCacheKey.FOLLOWING_COUNT, user_id), fetch, ttl=CacheTTL.SHORT
        )

    # ========== Achievements ==========

    async def get_user_achievements_count(self, user_id: str) -> int:
        async def fetch() -> int:
            return await self._count(UserAchievement, UserAchievement.user_id == user_id)

        return await self.cache.get_or_set(
            db_key(DbCacheKey.ACHIEVEMENTS, user_id, "count"), fetch, ttl=CacheTTL.SHORT
        )

    # ========== Forum ==========

    async def get_forum_category_post_count(self, category_id: str) -> int:
        async def fetch() -> int:
            return await self._count(
                ForumPost, ForumPost.category_id == category_id, ForumPost.deleted_at.is_(None)
            )

        return await self.cache.get_or_set(
            db_key(DbCacheKey.FORUM_CATEGORY_COUNT, category_id), fetch, ttl=CacheTTL.SHORT
        )

    # ========== Invalidation ==========

    async def _invalidate_namespace(self, prefix: str, entity_id: str) -> int:
        """Drop ``<prefix>:<id>`` and everything nested under it."""
        exact = await self.cache.delete(db_key(prefix, entity_id))
        nested = await self.cache.invalidate_pattern(f"{prefix}:{escape_pattern(entity_id)}:*")
        return int(exact) + nested

    async def invalidate_user_cache(self, user_id: str, clerk_id: str | None = None) -> None:
        """Invalidate every cached query scoped to a user."""
        namespaces = [
            DbCacheKey.USER,
            DbCacheKey.USER_STATS,
            DbCacheKey.USER_BOOKS,
            DbCacheKey.USER_BOOKS_COUNT,
            DbCacheKey.FLASHCARDS_DUE,
            DbCacheKey.FLASHCARDS_COUNT,
            DbCacheKey.ACHIEVEMENTS,
            DbCacheKey.FOLLOWERS_COUNT,
            DbCacheKey.FOLLOWING_COUNT,
        ]
        await asyncio.gather(
            *(self._invalidate_namespace(ns, user_id) for ns in namespaces)
        )
        if clerk_id:
            await self.cache.delete(db_key(DbCacheKey.USER_CLERK, clerk_id))

        logger.debug("Invalidated user cache", user_id=user_id)

    async def invalidate_book_cache(self, book_id: str) -> None:
        await self.cache.delete(db_key(DbCacheKey.BOOK, book_id))
        await self.cache.invalidate_pattern(
            f"{DbCacheKey.BOOK_PROGRESS}:{escape_pattern(book_id)}:*"
        )

        logger.debug("Invalidated book cache", book_id=book_id)

    async def invalidate_user_books_cache(self, user_id: str) -> None:
        """Invalidate every page of a user's library and its counts."""
        await self._invalidate_namespace(DbCacheKey.USER_BOOKS, user_id)
        await self._invalidate_namespace(DbCacheKey.USER_BOOKS_COUNT, user_id)

        logger.debug("Invalidated user books cache", user_id=user_id)

    async def invalidate_flashcards_cache(self, user_id: str) -> None:
        await self.cache.delete_many([
            db_key(DbCacheKey.FLASHCARDS_DUE, user_id),
            db_key(DbCacheKey.FLASHCARDS_COUNT, user_id),
        ])

        logger.debug("Invalidated flashcards cache", user_id=user_id)

    async def invalidate_social_cache(self, user_id: str) -> None:
        """Invalidate follow counts and the stats that embed them."""
        await self.cache.delete_many([
            db_key(DbCacheKey.FOLLOWERS_COUNT, user_id),
            db_key(DbCacheKey.FOLLOWING_COUNT, user_id),
        ])
        await self._invalidate_namespace(DbCacheKey.USER_STATS, user_id)

        logger.debug("Invalidated social cache", user_id=user_id)

    async def invalidate_forum_category_cache(self, category_id: str) -> None:
        await self.cache.delete(db_key(DbCacheKey.FORUM_CATEGORY_COUNT, category_id))

        logger.debug("Invalidated forum category cache", category_id=category_id)


@lru_cache
def get_db_cache() -> DbCache:
    """Get the process-wide DbCache (resolves cache and database lazily)."""
    return DbCache()
