"""Flashcard write path.

Mutations run through ``CacheService.with_invalidation`` so the per-user
card counts are dropped in the background once the commit returns.
"""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from readmaster.core.exceptions import NotFoundError, ValidationError
from readmaster.db.models import Flashcard
from readmaster.services.db_cache import DbCache, DbCacheKey, db_key


def flashcard_count_keys(user_id: str) -> list[str]:
    """Cache keys holding a user's flashcard counts."""
    return [
        db_key(DbCacheKey.FLASHCARDS_DUE, user_id),
        db_key(DbCacheKey.FLASHCARDS_COUNT, user_id),
    ]


async def create_flashcard(
    session: AsyncSession,
    db_cache: DbCache,
    user_id: str,
    front: str,
    back: str,
    *,
    book_id: str | None = None,
    due_date: datetime | None = None,
) -> Flashcard:
    """Create a card; it is due immediately unless ``due_date`` says otherwise."""
    if not front.strip() or not back.strip():
        raise ValidationError("Flashcard front and back must not be empty")

    async def _create() -> Flashcard:
        card = Flashcard(
            user_id=user_id,
            book_id=book_id,
            front=front,
            back=back,
            due_date=due_date or datetime.now(timezone.utc),
        )
        session.add(card)
        await session.commit()
        await session.refresh(card)
        return card

    create = db_cache.cache.with_invalidation(flashcard_count_keys(user_id), _create)
    return await create()


async def delete_flashcard(
    session: AsyncSession,
    db_cache: DbCache,
    card_id: str,
    user_id: str,
) -> None:
    """Soft-delete one of the user's cards."""

    async def _delete() -> None:
        card = await session.scalar(
            select(Flashcard).where(
                Flashcard.id == card_id,
                Flashcard.user_id == user_id,
                Flashcard.deleted_at.is_(None),
            )
        )
        if card is None:
            raise NotFoundError("Flashcard")

        card.deleted_at = datetime.now(timezone.utc)
        await session.commit()

    delete = db_cache.cache.with_invalidation(flashcard_count_keys(user_id), _delete)
    await delete()
