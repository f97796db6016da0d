"""Integration: catalog seeding, loading and monotonic unlocks."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy import select

from hhg.db.models import Achievement, UserAchievement
from hhg.exceptions import NotFoundError, ValidationError
from hhg.progress import achievement_service
from hhg.progress.achievement_service import (
    get_achievement_by_slug,
    has_achievement,
    load_catalog,
    unlock_achievements,
    unlocked_achievement_ids,
)
from hhg.progress.criteria import HABIT_LOG_TAGS, SOCIAL_TAGS, UserState
from hhg.progress.seed import ACHIEVEMENT_SEED_DATA, seed_achievements


@pytest_asyncio.fixture
async def seeded(db_session, make_user):
    await seed_achievements(db_session)
    user = await make_user("ana")
    return user.id


class TestSeed:
    async def test_idempotent(self, db_session):
        assert await seed_achievements(db_session) == len(ACHIEVEMENT_SEED_DATA)
        assert await seed_achievements(db_session) == 0

    async def test_lookup_by_slug(self, db_session, seeded):
        achievement = await get_achievement_by_slug(db_session, "social_butterfly")
        assert achievement.criteria == {"type": "friends", "value": 1}

    async def test_unknown_slug(self, db_session, seeded):
        with pytest.raises(NotFoundError):
            await get_achievement_by_slug(db_session, "nope")


class TestLoadCatalog:
    async def test_parses_every_entry(self, db_session, seeded):
        catalog = await load_catalog(db_session)
        assert [entry.slug for entry in catalog] == [d["slug"] for d in ACHIEVEMENT_SEED_DATA]
        assert catalog[1].criteria.type == "days"
        assert catalog[1].criteria.value == 7

    async def test_inactive_entries_skipped(self, db_session, seeded):
        achievement = await get_achievement_by_slug(db_session, "home_builder")
        achievement.is_active = False
        await db_session.commit()

        slugs = [entry.slug for entry in await load_catalog(db_session)]
        assert "home_builder" not in slugs

    async def test_malformed_entry_fails_load(self, db_session, seeded):
        db_session.add(
            Achievement(slug="broken", name="Broken", description="bad", criteria={"type": "levels", "value": 2})
        )
        await db_session.commit()

        with pytest.raises(ValidationError, match="broken"):
            await load_catalog(db_session)


class TestUnlock:
    async def test_unlocks_met_criteria(self, db_session, seeded):
        user_id = seeded
        catalog = await load_catalog(db_session)

        unlocked = await unlock_achievements(db_session, UserState(user_id=user_id, max_streak=7), catalog)

        assert [a.slug for a in unlocked] == ["first_day", "one_week_strong"]
        assert all(a.user_id == user_id for a in unlocked)

    async def test_monotonic(self, db_session, seeded):
        user_id = seeded
        catalog = await load_catalog(db_session)
        await unlock_achievements(db_session, UserState(user_id=user_id, max_streak=7), catalog)

        again = await unlock_achievements(db_session, UserState(user_id=user_id, max_streak=7), catalog)
        assert again == []

        # A broken streak never revokes what was unlocked
        await unlock_achievements(db_session, UserState(user_id=user_id, max_streak=0), catalog)
        one_week = await get_achievement_by_slug(db_session, "one_week_strong")
        assert await has_achievement(db_session, user_id, one_week.id)

    async def test_tags_limit_evaluation(self, db_session, seeded):
        user_id = seeded
        catalog = await load_catalog(db_session)
        state = UserState(user_id=user_id, max_streak=1, friends=1)

        unlocked = await unlock_achievements(db_session, state, catalog, HABIT_LOG_TAGS)
        assert [a.slug for a in unlocked] == ["first_day"]

        unlocked = await unlock_achievements(db_session, state, catalog, SOCIAL_TAGS)
        assert [a.slug for a in unlocked] == ["social_butterfly"]

    async def test_collaborator_counts(self, db_session, seeded):
        user_id = seeded
        catalog = await load_catalog(db_session)
        state = UserState(user_id=user_id, rooms=1, support_given=10)

        unlocked = await unlock_achievements(db_session, state, catalog)

        assert {a.slug for a in unlocked} == {"home_builder", "support_giver"}

    async def test_progress_snapshot_stored(self, db_session, seeded):
        user_id = seeded
        catalog = await load_catalog(db_session)
        await unlock_achievements(db_session, UserState(user_id=user_id, support_given=12), catalog)
        await db_session.commit()

        row = (
            await db_session.execute(select(UserAchievement).where(UserAchievement.user_id == user_id))
        ).scalar_one()
        assert row.achievement.slug == "support_giver"
        assert row.progress_data == {"observed": 12, "threshold": 10}
        assert await unlocked_achievement_ids(db_session, user_id) == {row.achievement_id}

    async def test_row_stored_by_another_evaluator(self, db_session, session_factory, seeded, monkeypatch):
        """An evaluator whose unlocked-set read predates another commit reports nothing."""
        user_id = seeded
        catalog = await load_catalog(db_session)
        await db_session.commit()
        state = UserState(user_id=user_id, max_streak=1)

        async with session_factory() as other:
            assert [a.slug for a in await unlock_achievements(other, state, catalog)] == ["first_day"]
            await other.commit()

        async def stale_read(db, user_id):
            return set()

        monkeypatch.setattr(achievement_service, "unlocked_achievement_ids", stale_read)

        assert await unlock_achievements(db_session, state, catalog) == []
        await db_session.commit()
        rows = await db_session.execute(select(UserAchievement).where(UserAchievement.user_id == user_id))
        assert len(rows.scalars().all()) == 1
