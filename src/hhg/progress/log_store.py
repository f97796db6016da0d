"""Log store adapter: habit lookups and per-day completion records."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hhg.db.dialect import insert_for
from hhg.db.models import Habit, HabitLog, MoodLevel, User
from hhg.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 10

_MOODS = {m.value for m in MoodLevel}


async def get_user(db: AsyncSession, user_id: int) -> User:
    """Fetch a user or raise NotFoundError."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def get_habit(db: AsyncSession, habit_id: int) -> Habit:
    """Fetch a habit or raise NotFoundError."""
    habit = await db.get(Habit, habit_id)
    if habit is None:
        raise NotFoundError(f"Habit {habit_id} not found")
    return habit


async def get_user_habit(db: AsyncSession, user_id: int, habit_id: int) -> Habit:
    """Fetch a habit owned by ``user_id``; foreign habits are reported as absent."""
    habit = await get_habit(db, habit_id)
    if habit.user_id != user_id:
        raise NotFoundError(f"Habit {habit_id} not found for user {user_id}")
    return habit


async def lock_user_habit(db: AsyncSession, user_id: int, habit_id: int) -> Habit:
    """Like ``get_user_habit``, holding the habit row lock until commit.

    Writers for the same habit queue here, so each one reads the streak
    the previous writer committed.
    """
    result = await db.execute(
        select(Habit)
        .where(Habit.id == habit_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    habit = result.scalar_one_or_none()
    if habit is None or habit.user_id != user_id:
        raise NotFoundError(f"Habit {habit_id} not found for user {user_id}")
    return habit


async def list_active_habits(db: AsyncSession, user_id: int) -> list[Habit]:
    result = await db.execute(
        select(Habit)
        .where(Habit.user_id == user_id, Habit.is_active.is_(True))
        .order_by(Habit.id)
    )
    return list(result.scalars().all())


def _validate_mood(field: str, value: str | None) -> None:
    if value is not None and value not in _MOODS:
        raise ValidationError(f"{field} must be one of {sorted(_MOODS)}, got {value!r}")


async def upsert_log(
    db: AsyncSession,
    user_id: int,
    habit: Habit,
    log_date: date,
    completed: bool,
    mood_before: str | None = None,
    mood_after: str | None = None,
    difficulty: int | None = None,
    notes: str | None = None,
) -> None:
    """Insert the (habit, date) entry, or amend it if it already exists.

    Only the owning user may write; the habit must already be resolved
    through ``get_user_habit``.
    """
    if habit.user_id != user_id:
        raise NotFoundError(f"Habit {habit.id} not found for user {user_id}")
    if log_date < habit.start_date:
        raise ValidationError(
            f"Log date {log_date.isoformat()} is before habit start {habit.start_date.isoformat()}"
        )
    if difficulty is not None and not MIN_DIFFICULTY <= difficulty <= MAX_DIFFICULTY:
        raise ValidationError(f"difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}")
    _validate_mood("mood_before", mood_before)
    _validate_mood("mood_after", mood_after)

    now = datetime.now(timezone.utc)
    values = {
        "completed": completed,
        "completion_time": now if completed else None,
        "mood_before": mood_before,
        "mood_after": mood_after,
        "difficulty_level": difficulty,
        "notes": notes,
    }
    stmt = insert_for(db, HabitLog.__table__).values(
        habit_id=habit.id,
        user_id=user_id,
        date=log_date,
        created_at=now,
        **values,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["habit_id", "date"],
        set_=values,
    )
    await db.execute(stmt)
    logger.debug("Habit log written: habit=%d date=%s completed=%s", habit.id, log_date, completed)


async def get_log(db: AsyncSession, habit_id: int, log_date: date) -> HabitLog | None:
    result = await db.execute(
        select(HabitLog)
        .where(HabitLog.habit_id == habit_id, HabitLog.log_date == log_date)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def logged_dates_desc(
    db: AsyncSession,
    user_id: int,
    habit_id: int,
    start: date,
    end: date,
) -> list[tuple[date, bool]]:
    """(date, completed) pairs in [start, end], most recent first."""
    if start > end:
        raise ValidationError(f"Malformed date range: {start.isoformat()} > {end.isoformat()}")

    result = await db.execute(
        select(HabitLog.log_date, HabitLog.completed)
        .where(
            HabitLog.habit_id == habit_id,
            HabitLog.user_id == user_id,
            HabitLog.log_date >= start,
            HabitLog.log_date <= end,
        )
        .order_by(HabitLog.log_date.desc())
    )
    return [(row.log_date, bool(row.completed)) for row in result]


async def completed_dates_desc(
    db: AsyncSession,
    user_id: int,
    habit_id: int,
    start: date,
    end: date,
) -> list[date]:
    """Completed days in [start, end], most recent first."""
    return [d for d, completed in await logged_dates_desc(db, user_id, habit_id, start, end) if completed]
