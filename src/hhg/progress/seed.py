"""Default achievement catalog: the six launch achievements."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from hhg.db.dialect import insert_for
from hhg.db.models import Achievement
from hhg.progress.criteria import parse_criteria

logger = logging.getLogger(__name__)

ACHIEVEMENT_SEED_DATA: list[dict] = [
    {
        "slug": "first_day",
        "name": "First Day",
        "description": "Completed your first day of sobriety",
        "icon_url": "/icons/first-day.png",
        "category": "milestone",
        "criteria": {"type": "days", "value": 1},
    },
    {
        "slug": "one_week_strong",
        "name": "One Week Strong",
        "description": "One week of maintaining your habit",
        "icon_url": "/icons/one-week.png",
        "category": "milestone",
        "criteria": {"type": "days", "value": 7},
    },
    {
        "slug": "one_month_milestone",
        "name": "One Month Milestone",
        "description": "Thirty days of consistent progress",
        "icon_url": "/icons/one-month.png",
        "category": "milestone",
        "criteria": {"type": "days", "value": 30},
    },
    {
        "slug": "social_butterfly",
        "name": "Social Butterfly",
        "description": "Made your first friend connection",
        "icon_url": "/icons/social.png",
        "category": "social",
        "criteria": {"type": "friends", "value": 1},
    },
    {
        "slug": "home_builder",
        "name": "Home Builder",
        "description": "Created your first safe space room",
        "icon_url": "/icons/home.png",
        "category": "building",
        "criteria": {"type": "rooms", "value": 1},
    },
    {
        "slug": "support_giver",
        "name": "Support Giver",
        "description": "Supported 10 friends in their journey",
        "icon_url": "/icons/support.png",
        "category": "social",
        "criteria": {"type": "support_given", "value": 10},
    },
]


async def seed_achievements(db: AsyncSession) -> int:
    """Insert the default catalog. Idempotent by slug; returns rows inserted."""
    inserted = 0
    for data in ACHIEVEMENT_SEED_DATA:
        parse_criteria(data["criteria"])
        stmt = (
            insert_for(db, Achievement)
            .values(**data)
            .on_conflict_do_nothing(index_elements=["slug"])
            .returning(Achievement.id)
        )
        result = await db.execute(stmt)
        if result.scalar_one_or_none() is not None:
            inserted += 1

    await db.commit()
    logger.info("Seeded %d achievement definitions", inserted)
    return inserted
