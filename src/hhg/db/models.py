"""ORM models for the tables the engine reads and writes.

``users`` and ``habits`` belong to the account and habit services; they are
mapped here read-only with ``extend_existing=True``. The remaining tables are
owned by the engine and carry the storage-level uniqueness constraints that
make milestone/achievement emission and graph mutations race-free.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hhg.db.base import Base, BigIntId, JSONDoc


class MoodLevel(str, Enum):
    VERY_LOW = "very_low"
    LOW = "low"
    NEUTRAL = "neutral"
    GOOD = "good"
    VERY_GOOD = "very_good"


class FriendshipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"
    DECLINED = "declined"


# ---------------------------------------------------------------------------
# Users & habits (owned by collaborators)
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table."""

    __tablename__ = "users"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="active")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Habit(Base):
    """Maps to the 'habits' table. ``custom_milestones`` holds extra day thresholds."""

    __tablename__ = "habits"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, server_default="build")
    category: Mapped[str] = mapped_column(String(32), nullable=False, server_default="other")
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    custom_milestones: Mapped[list[int]] = mapped_column(JSONDoc, default=list, server_default="[]")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())

    user: Mapped[User] = relationship("User")


# ---------------------------------------------------------------------------
# Log store
# ---------------------------------------------------------------------------


class HabitLog(Base):
    """Daily completion record: UNIQUE(habit_id, date)."""

    __tablename__ = "habit_logs"
    __table_args__ = (
        UniqueConstraint("habit_id", "date", name="habit_logs_habit_id_date_key"),
        CheckConstraint("difficulty_level >= 1 AND difficulty_level <= 10", name="difficulty_range"),
        Index("idx_habit_logs_user_date", "user_id", "date"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    habit_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    log_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    completion_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    mood_before: Mapped[str | None] = mapped_column(String(16), nullable=True)
    mood_after: Mapped[str | None] = mapped_column(String(16), nullable=True)
    difficulty_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ---------------------------------------------------------------------------
# Progress facts (append-only)
# ---------------------------------------------------------------------------


class Milestone(Base):
    """Streak milestone: one row per (user, habit, type, value)."""

    __tablename__ = "milestones"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "habit_id", "milestone_type", "milestone_value",
            name="milestones_user_habit_type_value_key",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    habit_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    milestone_type: Mapped[str] = mapped_column(String(16), nullable=False)
    milestone_value: Mapped[int] = mapped_column(Integer, nullable=False)
    achieved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    celebrated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    shared_publicly: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Achievement(Base):
    """Achievement catalog: criteria document is validated on load."""

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    criteria: Mapped[dict[str, Any]] = mapped_column(JSONDoc, nullable=False)
    reward_data: Mapped[dict[str, Any]] = mapped_column(JSONDoc, default=dict, server_default="{}")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


class UserAchievement(Base):
    """Unlocked achievements: UNIQUE(user_id, achievement_id), never revoked."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="user_achievements_user_id_achievement_id_key"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
    )
    achieved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    progress_data: Mapped[dict[str, Any]] = mapped_column(JSONDoc, default=dict, server_default="{}")

    achievement: Mapped[Achievement] = relationship("Achievement", lazy="joined")


# ---------------------------------------------------------------------------
# Social graph
# ---------------------------------------------------------------------------


class Friendship(Base):
    """Directional friendship row, unique per unordered pair.

    ``pair_low_id``/``pair_high_id`` hold min/max of the two user ids so the
    database rejects (a, b) and (b, a) coexisting.
    """

    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("pair_low_id", "pair_high_id", name="friendships_pair_key"),
        CheckConstraint("requester_id <> addressee_id", name="no_self_friendship"),
        CheckConstraint("pair_low_id < pair_high_id", name="pair_ordered"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'blocked', 'declined')", name="status_valid"
        ),
        Index("idx_friendships_requester", "requester_id"),
        Index("idx_friendships_addressee", "addressee_id"),
        Index("idx_friendships_status", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    requester_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    addressee_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    pair_low_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pair_high_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=FriendshipStatus.PENDING.value)
    blocked_by_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class BestFriend(Base):
    """Best-friend link: at most ``max_best_friends`` rows per user."""

    __tablename__ = "best_friends"
    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="best_friends_user_id_friend_id_key"),
        CheckConstraint("user_id <> friend_id", name="no_self_best_friend"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    friend_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SocialCounter(Base):
    """Denormalized per-user social counters: single row per user.

    The row is the lock target that serializes best-friend adds for one
    user; ``best_friend_count`` mirrors the number of link rows.
    """

    __tablename__ = "social_counters"
    __table_args__ = (
        CheckConstraint("best_friend_count >= 0", name="best_friend_count_non_negative"),
    )

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, autoincrement=False
    )
    best_friend_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
