"""Streak calculation from the daily completion log.

A streak is the number of consecutive calendar days, ending at the reference
day, that have a completed log entry. A day with no entry breaks the streak
exactly like a day logged as not completed. Streaks are derived on demand and
never stored as the source of truth.
"""

from __future__ import annotations

import logging
from collections.abc import Container, Iterable
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from hhg.config import Settings, get_settings
from hhg.progress.log_store import completed_dates_desc, get_log, get_user_habit

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

# Days fetched per reverse-chronological scan step
SCAN_CHUNK_DAYS = 90


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def walk_streak(
    completed_days: Iterable[date],
    as_of: date,
    floor: date,
    *,
    grace_today: bool = False,
    logged_days: Container[date] | None = None,
) -> int:
    """Walk backward from ``as_of`` counting completed days, never past ``floor``.

    With ``grace_today`` the walk starts one day earlier when ``as_of`` has no
    entry at all. A day logged as not completed is never graced, so callers
    that want grace must pass ``logged_days``.
    """
    completed = set(completed_days)
    day = as_of
    if grace_today and day not in completed and (logged_days is None or day not in logged_days):
        day -= ONE_DAY

    streak = 0
    while day >= floor and day in completed:
        streak += 1
        day -= ONE_DAY
    return streak


def longest_streak(completed_days: Iterable[date]) -> int:
    """Longest run of consecutive days anywhere in the history."""
    best = run = 0
    previous: date | None = None
    for day in sorted(set(completed_days)):
        run = run + 1 if previous is not None and day - previous == ONE_DAY else 1
        best = max(best, run)
        previous = day
    return best


async def compute_streak(
    db: AsyncSession,
    user_id: int,
    habit_id: int,
    as_of: date | None = None,
    settings: Settings | None = None,
) -> int:
    """Current streak for (user, habit) as of ``as_of`` (default: today, UTC).

    The backward scan is bounded by the habit start date and by
    ``streak_max_lookback_days``; reaching either bound ends the streak.
    """
    settings = settings or get_settings()
    habit = await get_user_habit(db, user_id, habit_id)
    as_of = as_of or utc_today()

    if as_of < habit.start_date:
        return 0

    floor = max(habit.start_date, as_of - timedelta(days=settings.streak_max_lookback_days - 1))

    day = as_of
    if settings.streak_grace_today and await get_log(db, habit_id, as_of) is None:
        day = as_of - ONE_DAY

    streak = 0
    while day >= floor:
        window_start = max(floor, day - timedelta(days=SCAN_CHUNK_DAYS - 1))
        completed = await completed_dates_desc(db, user_id, habit_id, window_start, day)
        run = walk_streak(completed, day, window_start)
        streak += run
        if run < (day - window_start).days + 1:
            break
        day = window_start - ONE_DAY

    return streak


async def forward_run_end(
    db: AsyncSession,
    user_id: int,
    habit_id: int,
    day: date,
    settings: Settings | None = None,
) -> date:
    """Last day of the unbroken completed run starting right after ``day``.

    Returns ``day`` itself when the following day is not completed. A write
    to ``day`` can only change streaks that end between the two.
    """
    settings = settings or get_settings()
    end = day + timedelta(days=settings.streak_max_lookback_days)
    completed = set(await completed_dates_desc(db, user_id, habit_id, day + ONE_DAY, end))
    run_end = day
    while run_end + ONE_DAY in completed:
        run_end += ONE_DAY
    return run_end


class StreakMemo:
    """Per-request memo of computed streaks.

    Any write to a (user, habit) log must call ``invalidate`` before the next
    lookup for that pair.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._cache: dict[tuple[int, int, date], int] = {}

    async def get(self, db: AsyncSession, user_id: int, habit_id: int, as_of: date) -> int:
        key = (user_id, habit_id, as_of)
        if key not in self._cache:
            self._cache[key] = await compute_streak(db, user_id, habit_id, as_of, self.settings)
        return self._cache[key]

    def invalidate(self, user_id: int, habit_id: int) -> None:
        for key in [k for k in self._cache if k[0] == user_id and k[1] == habit_id]:
            del self._cache[key]

    def clear(self) -> None:
        self._cache.clear()
