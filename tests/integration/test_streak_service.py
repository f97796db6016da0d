"""Integration: log store writes and streak computation against the database."""

from __future__ import annotations

import pytest
import pytest_asyncio

from hhg.config import Settings
from hhg.exceptions import NotFoundError, ValidationError
from hhg.progress.log_store import get_log, logged_dates_desc, upsert_log
from hhg.progress.streak_service import StreakMemo, compute_streak, forward_run_end


@pytest_asyncio.fixture
async def owner(make_user, make_habit):
    user = await make_user("ana")
    habit = await make_habit(user)
    return user, habit


class TestUpsertLog:
    """One entry per (habit, day); rewriting the day amends it."""

    async def test_insert_then_amend(self, db_session, owner, day):
        user, habit = owner
        await upsert_log(db_session, user.id, habit, day(1), True, mood_before="low", difficulty=4)
        await db_session.commit()

        log = await get_log(db_session, habit.id, day(1))
        assert log.completed is True
        assert log.mood_before == "low"
        assert log.difficulty_level == 4
        assert log.completion_time is not None

        await upsert_log(db_session, user.id, habit, day(1), False, notes="slipped")
        await db_session.commit()

        log = await get_log(db_session, habit.id, day(1))
        assert log.completed is False
        assert log.notes == "slipped"
        assert log.completion_time is None
        assert await logged_dates_desc(db_session, user.id, habit.id, day(1), day(1)) == [(day(1), False)]

    async def test_before_start_date(self, db_session, owner, day):
        user, habit = owner
        with pytest.raises(ValidationError, match="before habit start"):
            await upsert_log(db_session, user.id, habit, day(0), True)

    async def test_difficulty_out_of_range(self, db_session, owner, day):
        user, habit = owner
        with pytest.raises(ValidationError, match="difficulty"):
            await upsert_log(db_session, user.id, habit, day(1), True, difficulty=11)

    async def test_unknown_mood(self, db_session, owner, day):
        user, habit = owner
        with pytest.raises(ValidationError, match="mood_after"):
            await upsert_log(db_session, user.id, habit, day(1), True, mood_after="ecstatic")

    async def test_foreign_habit(self, db_session, owner, make_user, day):
        _, habit = owner
        other = await make_user("ben")
        with pytest.raises(NotFoundError):
            await upsert_log(db_session, other.id, habit, day(1), True)


class TestLoggedDates:
    async def test_most_recent_first(self, db_session, owner, add_logs, day):
        user, habit = owner
        await add_logs(habit, [1, 2, 3])
        await add_logs(habit, [4], completed=False)

        rows = await logged_dates_desc(db_session, user.id, habit.id, day(1), day(10))
        assert rows == [(day(4), False), (day(3), True), (day(2), True), (day(1), True)]

    async def test_malformed_range(self, db_session, owner, day):
        user, habit = owner
        with pytest.raises(ValidationError, match="Malformed date range"):
            await logged_dates_desc(db_session, user.id, habit.id, day(5), day(1))


class TestComputeStreak:
    """Consecutive completed days ending at the reference day."""

    async def test_unbroken_week(self, db_session, owner, add_logs, day, settings):
        user, habit = owner
        await add_logs(habit, range(1, 8))
        assert await compute_streak(db_session, user.id, habit.id, day(7), settings) == 7

    async def test_missing_day_breaks_streak(self, db_session, owner, add_logs, day, settings):
        user, habit = owner
        await add_logs(habit, [1, 2, 3, 5, 6])
        assert await compute_streak(db_session, user.id, habit.id, day(6), settings) == 2

    async def test_not_completed_breaks_streak(self, db_session, owner, add_logs, day, settings):
        user, habit = owner
        await add_logs(habit, [1, 2, 4, 5])
        await add_logs(habit, [3], completed=False)
        assert await compute_streak(db_session, user.id, habit.id, day(5), settings) == 2

    async def test_reference_day_without_entry(self, db_session, owner, add_logs, day, settings):
        user, habit = owner
        await add_logs(habit, [1, 2])
        assert await compute_streak(db_session, user.id, habit.id, day(3), settings) == 0

    async def test_before_habit_start(self, db_session, owner, day, settings):
        user, habit = owner
        assert await compute_streak(db_session, user.id, habit.id, day(-3), settings) == 0

    async def test_lookback_bound(self, db_session, owner, add_logs, day):
        user, habit = owner
        await add_logs(habit, range(1, 21))
        settings = Settings(_env_file=None, streak_max_lookback_days=5)
        assert await compute_streak(db_session, user.id, habit.id, day(20), settings) == 5

    async def test_scan_spans_several_chunks(self, db_session, owner, add_logs, day, settings):
        user, habit = owner
        await add_logs(habit, range(1, 201))
        assert await compute_streak(db_session, user.id, habit.id, day(200), settings) == 200

    async def test_gap_right_at_chunk_boundary(self, db_session, owner, add_logs, day, settings):
        user, habit = owner
        await add_logs(habit, [n for n in range(1, 201) if n != 110])
        assert await compute_streak(db_session, user.id, habit.id, day(200), settings) == 90

    async def test_grace_for_unlogged_today(self, db_session, owner, add_logs, day):
        user, habit = owner
        await add_logs(habit, range(1, 6))
        settings = Settings(_env_file=None, streak_grace_today=True)
        assert await compute_streak(db_session, user.id, habit.id, day(6), settings) == 5

    async def test_no_grace_for_logged_failure(self, db_session, owner, add_logs, day):
        user, habit = owner
        await add_logs(habit, range(1, 6))
        await add_logs(habit, [6], completed=False)
        settings = Settings(_env_file=None, streak_grace_today=True)
        assert await compute_streak(db_session, user.id, habit.id, day(6), settings) == 0

    async def test_foreign_habit(self, db_session, owner, make_user, day, settings):
        _, habit = owner
        other = await make_user("ben")
        with pytest.raises(NotFoundError):
            await compute_streak(db_session, other.id, habit.id, day(1), settings)


class TestForwardRunEnd:
    async def test_extends_over_following_days(self, db_session, owner, add_logs, day, settings):
        user, habit = owner
        await add_logs(habit, [9, 10, 11, 13])
        assert await forward_run_end(db_session, user.id, habit.id, day(8), settings) == day(11)

    async def test_next_day_missing(self, db_session, owner, add_logs, day, settings):
        user, habit = owner
        await add_logs(habit, [3])
        assert await forward_run_end(db_session, user.id, habit.id, day(1), settings) == day(1)


class TestStreakMemo:
    async def test_memoized_until_invalidated(self, db_session, owner, add_logs, day, settings):
        user, habit = owner
        memo = StreakMemo(settings)
        await add_logs(habit, [1, 2])
        assert await memo.get(db_session, user.id, habit.id, day(3)) == 0

        await add_logs(habit, [3])
        assert await memo.get(db_session, user.id, habit.id, day(3)) == 0

        memo.invalidate(user.id, habit.id)
        assert await memo.get(db_session, user.id, habit.id, day(3)) == 3
