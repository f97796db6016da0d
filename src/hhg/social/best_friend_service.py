"""Best-friend links with a per-user cap.

The user's ``social_counters`` row is the lock target for adds:

    SELECT ... FROM social_counters WHERE user_id = :user FOR UPDATE

Concurrent adders for the same user queue on that row, then count the
user's ``best_friends`` rows against the cap. The count is read from the
links themselves, so links removed by cascades (a deleted friend) free
their slot without the engine seeing it. ``best_friend_count`` is kept in
step after every change for readers that want a cheap number. The link
insert itself is guarded by the UNIQUE constraint.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hhg.config import Settings, get_settings
from hhg.db.dialect import insert_for
from hhg.db.models import BestFriend, SocialCounter
from hhg.exceptions import AlreadyMax, Blocked, Duplicate, NotFoundError, NotFriends, SelfReference
from hhg.progress.log_store import get_user
from hhg.social.friendship_service import ACCEPTED, BLOCKED, get_friendship_between

logger = logging.getLogger(__name__)


async def ensure_counter(db: AsyncSession, user_id: int) -> None:
    """Create the user's counter row if it does not exist yet."""
    stmt = (
        insert_for(db, SocialCounter)
        .values(user_id=user_id, best_friend_count=0)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    await db.execute(stmt)


async def _lock_counter(db: AsyncSession, user_id: int) -> None:
    await ensure_counter(db, user_id)
    await db.execute(select(SocialCounter.user_id).where(SocialCounter.user_id == user_id).with_for_update())


async def _sync_counter(db: AsyncSession, user_id: int) -> None:
    links = (
        select(func.count())
        .select_from(BestFriend)
        .where(BestFriend.user_id == user_id)
        .scalar_subquery()
    )
    await db.execute(
        update(SocialCounter)
        .where(SocialCounter.user_id == user_id)
        .values(best_friend_count=links, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )


async def is_best_friend(db: AsyncSession, user_id: int, friend_id: int) -> bool:
    result = await db.execute(
        select(BestFriend.id).where(BestFriend.user_id == user_id, BestFriend.friend_id == friend_id)
    )
    return result.scalar_one_or_none() is not None


async def add_best_friend(
    db: AsyncSession,
    user_id: int,
    friend_id: int,
    settings: Settings | None = None,
) -> BestFriend:
    """Mark ``friend_id`` as a best friend of ``user_id``.

    Requires an accepted friendship. Raises AlreadyMax once the user holds
    ``max_best_friends`` links.
    """
    settings = settings or get_settings()
    if user_id == friend_id:
        raise SelfReference("Users cannot mark themselves as best friend")

    await get_user(db, user_id)
    await get_user(db, friend_id)

    friendship = await get_friendship_between(db, user_id, friend_id)
    if friendship is not None and friendship.status == BLOCKED:
        raise Blocked("Friendship is blocked")
    if friendship is None or friendship.status != ACCEPTED:
        raise NotFriends("Best friends must be accepted friends first")

    await _lock_counter(db, user_id)

    if await is_best_friend(db, user_id, friend_id):
        raise Duplicate("Already a best friend")
    if await count_best_friends(db, user_id) >= settings.max_best_friends:
        raise AlreadyMax(f"Best friend limit of {settings.max_best_friends} reached")

    stmt = (
        insert_for(db, BestFriend)
        .values(user_id=user_id, friend_id=friend_id)
        .on_conflict_do_nothing(index_elements=["user_id", "friend_id"])
        .returning(BestFriend.id)
    )
    new_id = (await db.execute(stmt)).scalar_one_or_none()
    if new_id is None:
        raise Duplicate("Already a best friend")
    await _sync_counter(db, user_id)

    logger.info("Best friend added: %d -> %d", user_id, friend_id)
    return await db.get(BestFriend, new_id)


async def remove_best_friend(db: AsyncSession, user_id: int, friend_id: int) -> None:
    """Remove the link. Raises NotFoundError if absent."""
    if not await _delete_link(db, user_id, friend_id):
        raise NotFoundError(f"User {friend_id} is not a best friend of user {user_id}")
    logger.info("Best friend removed: %d -> %d", user_id, friend_id)


async def _delete_link(db: AsyncSession, user_id: int, friend_id: int) -> bool:
    result = await db.execute(
        delete(BestFriend)
        .where(BestFriend.user_id == user_id, BestFriend.friend_id == friend_id)
        .returning(BestFriend.id)
        .execution_options(synchronize_session=False)
    )
    if result.scalar_one_or_none() is None:
        return False
    await _sync_counter(db, user_id)
    return True


async def release_links_between(db: AsyncSession, a: int, b: int) -> int:
    """Drop best-friend links in both directions; returns how many were removed."""
    removed = 0
    for user_id, friend_id in ((a, b), (b, a)):
        if await _delete_link(db, user_id, friend_id):
            removed += 1
    if removed:
        logger.info("Released %d best-friend link(s) between %d and %d", removed, a, b)
    return removed


async def list_best_friend_ids(db: AsyncSession, user_id: int) -> list[int]:
    result = await db.execute(
        select(BestFriend.friend_id).where(BestFriend.user_id == user_id).order_by(BestFriend.id)
    )
    return list(result.scalars().all())


async def count_best_friends(db: AsyncSession, user_id: int) -> int:
    """Authoritative count from the link rows, not the counter."""
    result = await db.execute(
        select(func.count()).select_from(BestFriend).where(BestFriend.user_id == user_id)
    )
    return result.scalar_one()


async def get_best_friend_counter(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(SocialCounter.best_friend_count).where(SocialCounter.user_id == user_id)
    )
    return result.scalar_one_or_none() or 0
