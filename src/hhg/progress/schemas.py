"""Pydantic models for engine results and notification hand-off."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from hhg.exceptions import RejectReason

MilestoneType = Literal["days", "weeks", "months", "custom"]


# --- Progress ---


class MilestoneEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    habit_id: int
    milestone_type: MilestoneType
    value: int
    achieved_at: datetime

    @property
    def key(self) -> tuple[int, str, int]:
        return (self.habit_id, self.milestone_type, self.value)


class UnlockedAchievement(BaseModel):
    user_id: int
    achievement_id: int
    slug: str
    name: str
    achieved_at: datetime


class NotificationEvent(BaseModel):
    kind: Literal["milestone", "achievement"]
    user_id: int
    payload: dict[str, Any] = Field(default_factory=dict)


class ProgressResult(BaseModel):
    user_id: int
    habit_id: int
    as_of: date
    previous_streak: int
    streak: int
    milestones: list[MilestoneEvent] = Field(default_factory=list)
    achievements: list[UnlockedAchievement] = Field(default_factory=list)
    events: list[NotificationEvent] = Field(default_factory=list)


# --- Social graph ---


class FriendshipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: int
    addressee_id: int
    status: str
    blocked_by_id: int | None = None
    requested_at: datetime
    responded_at: datetime | None = None


class BestFriendOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    friend_id: int


class GraphResult(BaseModel):
    accepted: bool
    friendship: FriendshipOut | None = None
    best_friend: BestFriendOut | None = None
    rejection: RejectReason | None = None
    message: str | None = None
    achievements: list[UnlockedAchievement] = Field(default_factory=list)
    events: list[NotificationEvent] = Field(default_factory=list)
