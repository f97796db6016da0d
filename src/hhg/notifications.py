"""Notification hand-off: engine events over Redis pub/sub.

Delivery (push, in-app inbox, retries) belongs to the subscriber. Events are
published only after the transaction that produced them has committed.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable

from hhg.progress.schemas import MilestoneEvent, NotificationEvent, UnlockedAchievement

logger = logging.getLogger(__name__)


def milestone_event(milestone: MilestoneEvent) -> NotificationEvent:
    return NotificationEvent(
        kind="milestone",
        user_id=milestone.user_id,
        payload={
            "habit_id": milestone.habit_id,
            "milestone_type": milestone.milestone_type,
            "value": milestone.value,
            "achieved_at": milestone.achieved_at.isoformat(),
        },
    )


def achievement_event(achievement: UnlockedAchievement) -> NotificationEvent:
    return NotificationEvent(
        kind="achievement",
        user_id=achievement.user_id,
        payload={
            "achievement_id": achievement.achievement_id,
            "slug": achievement.slug,
            "name": achievement.name,
            "achieved_at": achievement.achieved_at.isoformat(),
        },
    )


def build_events(
    milestones: Iterable[MilestoneEvent] = (),
    achievements: Iterable[UnlockedAchievement] = (),
) -> list[NotificationEvent]:
    """Milestone events first, then achievements, each in emission order."""
    return [milestone_event(m) for m in milestones] + [achievement_event(a) for a in achievements]


async def publish_events(
    redis: object | None,
    events: Iterable[NotificationEvent],
    prefix: str = "pubsub:",
) -> int:
    """Publish each event to ``<prefix><kind>``. Returns how many were sent.

    A failed publish is logged and skipped; the committed state is unaffected.
    """
    if redis is None:
        return 0

    sent = 0
    for event in events:
        try:
            await redis.publish(  # type: ignore[union-attr]
                f"{prefix}{event.kind}",
                json.dumps(event.model_dump(mode="json")),
            )
            sent += 1
        except Exception:
            logger.warning(
                "Failed to publish %s notification for user %d",
                event.kind,
                event.user_id,
                exc_info=True,
            )
    return sent
