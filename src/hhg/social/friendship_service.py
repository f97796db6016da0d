"""Friendship requests and the friendship state machine.

Rules:
- A user cannot befriend themselves
- One row per unordered pair, whichever side asked first
- pending -> accepted | declined | blocked; accepted -> blocked
- declined may be re-requested (who may do so is configurable)
- blocked is terminal here; unblocking belongs to an external policy

Every status change is a conditional UPDATE on the expected current status,
so of two concurrent responders at most one succeeds.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hhg.config import Settings, get_settings
from hhg.db.dialect import insert_for
from hhg.db.models import Friendship, FriendshipStatus
from hhg.exceptions import (
    Blocked,
    Duplicate,
    InvalidTransition,
    NotFoundError,
    NotParticipant,
    SelfReference,
)
from hhg.progress.log_store import get_user

logger = logging.getLogger(__name__)

PENDING = FriendshipStatus.PENDING.value
ACCEPTED = FriendshipStatus.ACCEPTED.value
DECLINED = FriendshipStatus.DECLINED.value
BLOCKED = FriendshipStatus.BLOCKED.value

VALID_TRANSITIONS: dict[str, list[str]] = {
    PENDING: [ACCEPTED, DECLINED, BLOCKED],
    ACCEPTED: [BLOCKED],
    DECLINED: [PENDING],
    BLOCKED: [],
}


def validate_transition(current_status: str, target_status: str) -> None:
    """Validate a status change. Raises Blocked or InvalidTransition."""
    if current_status == BLOCKED:
        raise Blocked("Friendship is blocked")
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise InvalidTransition(
            f"Invalid transition: {current_status} -> {target_status}. Valid transitions: {valid}"
        )


def pair_key(a: int, b: int) -> tuple[int, int]:
    """Order-independent key for the pair (a, b)."""
    return (a, b) if a < b else (b, a)


async def get_friendship(db: AsyncSession, friendship_id: int) -> Friendship:
    friendship = await db.get(Friendship, friendship_id, populate_existing=True)
    if friendship is None:
        raise NotFoundError(f"Friendship {friendship_id} not found")
    return friendship


async def get_friendship_between(db: AsyncSession, a: int, b: int) -> Friendship | None:
    """The single row for the unordered pair, regardless of who asked."""
    low, high = pair_key(a, b)
    result = await db.execute(
        select(Friendship)
        .where(Friendship.pair_low_id == low, Friendship.pair_high_id == high)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _compare_and_set(
    db: AsyncSession,
    friendship: Friendship,
    expected: list[str],
    **values: object,
) -> bool:
    """Apply ``values`` only if the row still has one of the ``expected`` statuses."""
    result = await db.execute(
        update(Friendship)
        .where(Friendship.id == friendship.id, Friendship.status.in_(expected))
        .values(updated_at=datetime.now(timezone.utc), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    await db.refresh(friendship)
    return True


async def request_friendship(
    db: AsyncSession,
    requester_id: int,
    addressee_id: int,
    settings: Settings | None = None,
) -> Friendship:
    """Create a pending request from ``requester_id`` to ``addressee_id``."""
    settings = settings or get_settings()
    if requester_id == addressee_id:
        raise SelfReference("Users cannot send a friend request to themselves")

    await get_user(db, requester_id)
    await get_user(db, addressee_id)

    now = datetime.now(timezone.utc)
    existing = await get_friendship_between(db, requester_id, addressee_id)

    if existing is None:
        low, high = pair_key(requester_id, addressee_id)
        stmt = (
            insert_for(db, Friendship)
            .values(
                requester_id=requester_id,
                addressee_id=addressee_id,
                pair_low_id=low,
                pair_high_id=high,
                status=PENDING,
                requested_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["pair_low_id", "pair_high_id"])
            .returning(Friendship.id)
        )
        new_id = (await db.execute(stmt)).scalar_one_or_none()
        if new_id is None:
            raise Duplicate("A friendship between these users already exists")
        logger.info("Friend request created: %d -> %d", requester_id, addressee_id)
        return await get_friendship(db, new_id)

    if existing.status == BLOCKED:
        raise Blocked("Friendship is blocked")
    if existing.status != DECLINED:
        raise Duplicate(f"A friendship between these users already exists ({existing.status})")
    if settings.declined_rerequest_policy == "original_requester" and existing.requester_id != requester_id:
        raise InvalidTransition("Only the original requester may renew a declined request")

    renewed = await _compare_and_set(
        db,
        existing,
        [DECLINED],
        requester_id=requester_id,
        addressee_id=addressee_id,
        status=PENDING,
        requested_at=now,
        responded_at=None,
    )
    if not renewed:
        raise Duplicate("Friendship changed concurrently")
    logger.info("Declined friendship %d renewed: %d -> %d", existing.id, requester_id, addressee_id)
    return existing


async def respond_friendship(
    db: AsyncSession,
    friendship_id: int,
    responder_id: int,
    accept: bool,
) -> Friendship:
    """Accept or decline a pending request. Only the addressee may respond."""
    friendship = await get_friendship(db, friendship_id)
    if responder_id not in (friendship.requester_id, friendship.addressee_id):
        raise NotParticipant("Only the users in a friendship can respond to it")
    if friendship.status == BLOCKED:
        raise Blocked("Friendship is blocked")
    if responder_id != friendship.addressee_id:
        raise NotParticipant("Only the addressee can respond to a friend request")

    target = ACCEPTED if accept else DECLINED
    validate_transition(friendship.status, target)

    responded = await _compare_and_set(
        db,
        friendship,
        [PENDING],
        status=target,
        responded_at=datetime.now(timezone.utc),
    )
    if not responded:
        raise InvalidTransition("Friendship is no longer pending")
    logger.info("Friendship %d %s by %d", friendship.id, target, responder_id)
    return friendship


async def block_user(db: AsyncSession, actor_id: int, other_id: int) -> Friendship:
    """Block the other side of an existing pending or accepted friendship.

    Best-friend links between the two users are removed in the same
    transaction and their slots released.
    """
    from hhg.social.best_friend_service import release_links_between

    if actor_id == other_id:
        raise SelfReference("Users cannot block themselves")

    friendship = await get_friendship_between(db, actor_id, other_id)
    if friendship is None:
        raise NotFoundError(f"No friendship between users {actor_id} and {other_id}")

    validate_transition(friendship.status, BLOCKED)

    blocked = await _compare_and_set(
        db,
        friendship,
        [PENDING, ACCEPTED],
        status=BLOCKED,
        blocked_by_id=actor_id,
        responded_at=datetime.now(timezone.utc),
    )
    if not blocked:
        raise InvalidTransition("Friendship changed concurrently")

    await release_links_between(db, actor_id, other_id)
    logger.info("Friendship %d blocked by %d", friendship.id, actor_id)
    return friendship


async def count_accepted_friends(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Friendship)
        .where(
            Friendship.status == ACCEPTED,
            or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
        )
    )
    return result.scalar_one()


async def list_friend_ids(db: AsyncSession, user_id: int) -> list[int]:
    """Ids of users with an accepted friendship with ``user_id``."""
    result = await db.execute(
        select(Friendship.requester_id, Friendship.addressee_id).where(
            Friendship.status == ACCEPTED,
            or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
        )
    )
    return sorted(row.addressee_id if row.requester_id == user_id else row.requester_id for row in result)
