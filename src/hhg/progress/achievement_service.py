"""Achievement catalog loading and monotonic unlocks."""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hhg.db.dialect import insert_for
from hhg.db.models import Achievement, UserAchievement
from hhg.exceptions import NotFoundError, ValidationError
from hhg.progress.criteria import Criteria, UserState, evaluate, parse_criteria
from hhg.progress.schemas import UnlockedAchievement

logger = logging.getLogger(__name__)


class ActivityCounts(Protocol):
    """Aggregate counts owned by the profile and space collaborators."""

    async def rooms_created(self, user_id: int) -> int: ...

    async def support_given(self, user_id: int) -> int: ...

    async def custom_metrics(self, user_id: int) -> dict[str, int]: ...


class NoActivityCounts:
    """Stand-in when no collaborator is wired: every count is zero."""

    async def rooms_created(self, user_id: int) -> int:
        return 0

    async def support_given(self, user_id: int) -> int:
        return 0

    async def custom_metrics(self, user_id: int) -> dict[str, int]:
        return {}


@dataclass(frozen=True)
class CatalogEntry:
    id: int
    slug: str
    name: str
    criteria: Criteria


async def load_catalog(db: AsyncSession) -> list[CatalogEntry]:
    """Load active achievements and parse every criteria document.

    A malformed document fails the load with the achievement slug attached.
    """
    result = await db.execute(
        select(Achievement).where(Achievement.is_active.is_(True)).order_by(Achievement.id)
    )
    catalog = []
    for achievement in result.scalars():
        try:
            criteria = parse_criteria(achievement.criteria)
        except ValidationError as exc:
            raise ValidationError(f"Achievement {achievement.slug!r}: {exc.message}") from exc
        catalog.append(CatalogEntry(achievement.id, achievement.slug, achievement.name, criteria))
    return catalog


async def get_achievement_by_slug(db: AsyncSession, slug: str) -> Achievement:
    result = await db.execute(select(Achievement).where(Achievement.slug == slug))
    achievement = result.scalar_one_or_none()
    if achievement is None:
        raise NotFoundError(f"Achievement {slug!r} not found")
    return achievement


async def unlocked_achievement_ids(db: AsyncSession, user_id: int) -> set[int]:
    result = await db.execute(
        select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    )
    return set(result.scalars())


async def has_achievement(db: AsyncSession, user_id: int, achievement_id: int) -> bool:
    return achievement_id in await unlocked_achievement_ids(db, user_id)


async def unlock_achievements(
    db: AsyncSession,
    state: UserState,
    catalog: list[CatalogEntry],
    tags: Collection[str] | None = None,
) -> list[UnlockedAchievement]:
    """Unlock every catalog entry ``state`` now satisfies and the user lacks.

    ``tags`` restricts evaluation to criteria families relevant to the
    triggering event. Already-unlocked achievements are skipped; the UNIQUE
    constraint settles races with concurrent evaluators.
    """
    already = await unlocked_achievement_ids(db, state.user_id)
    now = datetime.now(timezone.utc)
    unlocked: list[UnlockedAchievement] = []

    for entry in catalog:
        if tags is not None and entry.criteria.type not in tags:
            continue
        if entry.id in already or not evaluate(entry.criteria, state):
            continue

        stmt = (
            insert_for(db, UserAchievement)
            .values(
                user_id=state.user_id,
                achievement_id=entry.id,
                achieved_at=now,
                progress_data=_progress_snapshot(entry.criteria, state),
            )
            .on_conflict_do_nothing(index_elements=["user_id", "achievement_id"])
            .returning(UserAchievement.id)
        )
        result = await db.execute(stmt)
        if result.scalar_one_or_none() is None:
            continue

        unlocked.append(
            UnlockedAchievement(
                user_id=state.user_id,
                achievement_id=entry.id,
                slug=entry.slug,
                name=entry.name,
                achieved_at=now,
            )
        )
        logger.info("Achievement unlocked: user=%d slug=%s", state.user_id, entry.slug)

    return unlocked


def _progress_snapshot(criteria: Criteria, state: UserState) -> dict[str, int | str]:
    """The counter value that satisfied the criteria, kept for display."""
    observed = {
        "days": state.max_streak,
        "friends": state.friends,
        "rooms": state.rooms,
        "support_given": state.support_given,
    }
    if criteria.type == "custom":
        return {
            "metric": criteria.metric,
            "observed": state.custom.get(criteria.metric, 0),
            "threshold": criteria.value,
        }
    return {"observed": observed[criteria.type], "threshold": criteria.value}
