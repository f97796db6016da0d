"""Shared test fixtures.

Every test gets its own file-backed SQLite database, so sessions opened from
``session_factory`` see each other's commits the way separate connections to
PostgreSQL would.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Iterable
from datetime import date, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from hhg.config import Settings
from hhg.database import build_engine
from hhg.db.base import Base
from hhg.db.models import Habit, HabitLog, User
from hhg.social.friendship_service import request_friendship, respond_friendship

START = date(2026, 1, 1)


def timeline_day(n: int) -> date:
    """Calendar day ``n`` of the test timeline; day 1 is START."""
    return START + timedelta(days=n - 1)


@pytest.fixture
def day():
    """Map timeline day numbers to dates."""
    return timeline_day


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'hhg.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for setup and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db_session: AsyncSession):
    async def _make(username: str) -> User:
        user = User(username=username, display_name=username.title())
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_habit(db_session: AsyncSession):
    async def _make(user: User, start_date: date = START, custom_milestones: list[int] | None = None) -> Habit:
        habit = Habit(
            user_id=user.id,
            name="No sugar",
            type="break",
            category="health",
            start_date=start_date,
            custom_milestones=custom_milestones or [],
        )
        db_session.add(habit)
        await db_session.commit()
        return habit

    return _make


@pytest.fixture
def add_logs(db_session: AsyncSession):
    """Insert log rows for the given timeline days directly, bypassing the engine."""

    async def _add(habit: Habit, days: Iterable[int], completed: bool = True) -> None:
        for n in days:
            db_session.add(
                HabitLog(habit_id=habit.id, user_id=habit.user_id, log_date=timeline_day(n), completed=completed)
            )
        await db_session.commit()

    return _add


@pytest.fixture
def befriend(db_session: AsyncSession):
    """Create an accepted friendship between two users and commit it."""
    async def _befriend(a: User, b: User):
        friendship = await request_friendship(db_session, a.id, b.id)
        await respond_friendship(db_session, friendship.id, b.id, accept=True)
        await db_session.commit()
        return friendship

    return _befriend
