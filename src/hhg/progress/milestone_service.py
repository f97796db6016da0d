"""Milestone detection and idempotent persistence.

A threshold of ``t`` days fires when ``previous_streak < t <= new_streak`` and
no milestone for (habit, type, value) exists yet for the user. Detection is a
pure function; ``record_milestones`` relies on the table's UNIQUE constraint
so concurrent reprocessing of the same log write inserts each milestone once.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable
from datetime import datetime, timezone
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hhg.db.dialect import insert_for
from hhg.db.models import Milestone
from hhg.progress.schemas import MilestoneEvent

logger = logging.getLogger(__name__)


class Threshold(NamedTuple):
    milestone_type: str
    value: int
    days: int


# Fixed calendar buckets; custom thresholds come from the habit
MILESTONE_LADDER: tuple[Threshold, ...] = (
    Threshold("days", 1, 1),
    Threshold("weeks", 1, 7),
    Threshold("months", 1, 30),
)


def thresholds_for(custom: Iterable[int] = ()) -> list[Threshold]:
    """Ladder thresholds plus the habit's custom day counts, ordered by days."""
    thresholds = list(MILESTONE_LADDER)
    for days in sorted({int(d) for d in custom if int(d) > 0}):
        thresholds.append(Threshold("custom", days, days))
    return sorted(thresholds, key=lambda t: (t.days, t.milestone_type))


def detect_new_milestones(
    previous_streak: int,
    new_streak: int,
    existing: Collection[tuple[int, str, int]],
    *,
    user_id: int,
    habit_id: int,
    custom_thresholds: Iterable[int] = (),
    achieved_at: datetime | None = None,
) -> list[MilestoneEvent]:
    """Return milestones newly crossed between two streak readings.

    ``existing`` holds (habit_id, milestone_type, value) keys already emitted
    for this user. ``previous_streak`` must be the reading taken right before
    this recomputation, not a historical maximum.
    """
    if previous_streak < 0 or new_streak < 0:
        raise ValueError("Streak lengths cannot be negative")

    achieved_at = achieved_at or datetime.now(timezone.utc)
    events: list[MilestoneEvent] = []
    for threshold in thresholds_for(custom_thresholds):
        if not previous_streak < threshold.days <= new_streak:
            continue
        if (habit_id, threshold.milestone_type, threshold.value) in existing:
            continue
        events.append(
            MilestoneEvent(
                user_id=user_id,
                habit_id=habit_id,
                milestone_type=threshold.milestone_type,
                value=threshold.value,
                achieved_at=achieved_at,
            )
        )
    return events


async def existing_milestone_keys(
    db: AsyncSession, user_id: int, habit_id: int
) -> set[tuple[int, str, int]]:
    result = await db.execute(
        select(Milestone.habit_id, Milestone.milestone_type, Milestone.milestone_value).where(
            Milestone.user_id == user_id,
            Milestone.habit_id == habit_id,
        )
    )
    return {(row.habit_id, row.milestone_type, row.milestone_value) for row in result}


async def record_milestones(db: AsyncSession, events: Iterable[MilestoneEvent]) -> list[MilestoneEvent]:
    """Insert milestone rows; return only the events that were actually inserted."""
    inserted: list[MilestoneEvent] = []
    for event in events:
        stmt = (
            insert_for(db, Milestone)
            .values(
                user_id=event.user_id,
                habit_id=event.habit_id,
                milestone_type=event.milestone_type,
                milestone_value=event.value,
                achieved_at=event.achieved_at,
            )
            .on_conflict_do_nothing(
                index_elements=["user_id", "habit_id", "milestone_type", "milestone_value"],
            )
            .returning(Milestone.id)
        )
        result = await db.execute(stmt)
        if result.scalar_one_or_none() is None:
            logger.info(
                "Milestone already recorded by a concurrent writer: user=%d habit=%d %s=%d",
                event.user_id, event.habit_id, event.milestone_type, event.value,
            )
            continue
        inserted.append(event)
    return inserted
