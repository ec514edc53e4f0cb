"""Follow / unfollow write path."""

import asyncio

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from readmaster.core.exceptions import ConflictError, NotFoundError, ValidationError
from readmaster.core.logging import get_logger
from readmaster.db.models import Follow, User, UserStats
from readmaster.services.db_cache import DbCache

logger = get_logger(__name__)


async def _adjust_counts(session: AsyncSession, follower_id: str, following_id: str, delta: int) -> None:
    # Counters never go below zero
    following = update(UserStats).where(UserStats.user_id == follower_id)
    followers = update(UserStats).where(UserStats.user_id == following_id)
    if delta < 0:
        following = following.where(UserStats.following_count > 0)
        followers = followers.where(UserStats.followers_count > 0)

    await session.execute(following.values(following_count=UserStats.following_count + delta))
    await session.execute(followers.values(followers_count=UserStats.followers_count + delta))


async def _invalidate(db_cache: DbCache, follower_id: str, following_id: str) -> None:
    await asyncio.gather(
        db_cache.invalidate_social_cache(follower_id),
        db_cache.invalidate_social_cache(following_id),
    )


async def follow_user(
    session: AsyncSession,
    db_cache: DbCache,
    follower_id: str,
    following_id: str,
) -> Follow:
    """Make ``follower_id`` follow ``following_id``."""
    if follower_id == following_id:
        raise ValidationError("Users cannot follow themselves")

    target = await session.scalar(
        select(User.id).where(User.id == following_id, User.deleted_at.is_(None))
    )
    if target is None:
        raise NotFoundError("User")

    existing = await session.scalar(
        select(Follow.id).where(
            Follow.follower_id == follower_id,
            Follow.following_id == following_id,
        )
    )
    if existing is not None:
        raise ConflictError("Already following this user")

    follow = Follow(follower_id=follower_id, following_id=following_id)
    session.add(follow)
    await _adjust_counts(session, follower_id, following_id, 1)
    try:
        await session.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent follow of the same pair
        await session.rollback()
        raise ConflictError("Already following this user") from e

    await _invalidate(db_cache, follower_id, following_id)
    logger.info("User followed", follower_id=follower_id, following_id=following_id)
    return follow


async def unfollow_user(
    session: AsyncSession,
    db_cache: DbCache,
    follower_id: str,
    following_id: str,
) -> None:
    follow = await session.scalar(
        select(Follow).where(
            Follow.follower_id == follower_id,
            Follow.following_id == following_id,
        )
    )
    if follow is None:
        raise NotFoundError("Follow")

    await session.delete(follow)
    await _adjust_counts(session, follower_id, following_id, -1)
    await session.commit()

    await _invalidate(db_cache, follower_id, following_id)
    logger.info("User unfollowed", follower_id=follower_id, following_id=following_id)
