"""Library write path: add, update and remove books.

Each mutation commits first and only then drops the cached queries it
affects, so a concurrent reader can't re-cache pre-commit data.
"""

import asyncio
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from readmaster.core.exceptions import NotFoundError, ValidationError
from readmaster.core.logging import get_logger
from readmaster.db.models import Book, ReadingStatus
from readmaster.services.db_cache import DbCache

logger = get_logger(__name__)

_STATUSES = {s.value for s in ReadingStatus}


def _validate_status(status: str) -> str:
    if status not in _STATUSES:
        raise ValidationError(
            f"Invalid reading status: {status}",
            details={"allowed": sorted(_STATUSES)},
        )
    return status


async def _get_owned_book(session: AsyncSession, book_id: str, user_id: str) -> Book:
    book = await session.scalar(
        select(Book).where(
            Book.id == book_id,
            Book.user_id == user_id,
            Book.deleted_at.is_(None),
        )
    )
    if book is None:
        raise NotFoundError("Book")
    return book


async def _invalidate(db_cache: DbCache, book_id: str, user_id: str) -> None:
    await asyncio.gather(
        db_cache.invalidate_book_cache(book_id),
        db_cache.invalidate_user_books_cache(user_id),
    )


async def add_book(
    session: AsyncSession,
    db_cache: DbCache,
    user_id: str,
    title: str,
    *,
    author: str | None = None,
    genre: str | None = None,
    tags: list[str] | None = None,
    word_count: int | None = None,
    status: str = ReadingStatus.WANT_TO_READ.value,
) -> Book:
    """Add a book to a user's library."""
    title = title.strip()
    if not title:
        raise ValidationError("Book title must not be empty")

    book = Book(
        user_id=user_id,
        title=title,
        author=author,
        genre=genre,
        tags=list(tags or []),
        word_count=word_count,
        status=_validate_status(status),
    )
    session.add(book)
    await session.commit()
    await session.refresh(book)

    await _invalidate(db_cache, book.id, user_id)
    logger.info("Book added", book_id=book.id, user_id=user_id)
    return book


async def update_book_status(
    session: AsyncSession,
    db_cache: DbCache,
    book_id: str,
    user_id: str,
    status: str,
) -> Book:
    """Move a book to another reading status."""
    _validate_status(status)
    book = await _get_owned_book(session, book_id, user_id)

    book.status = status
    await session.commit()
    await session.refresh(book)

    await _invalidate(db_cache, book_id, user_id)
    return book


async def delete_book(
    session: AsyncSession,
    db_cache: DbCache,
    book_id: str,
    user_id: str,
) -> None:
    """Soft-delete a book; cached reads stop returning it immediately."""
    book = await _get_owned_book(session, book_id, user_id)

    book.deleted_at = datetime.now(timezone.utc)
    await session.commit()

    await _invalidate(db_cache, book_id, user_id)
    logger.info("Book deleted", book_id=book_id, user_id=user_id)
