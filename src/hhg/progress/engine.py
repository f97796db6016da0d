"""Progress engine: one entry point per triggering event.

A habit-log write runs streak -> milestones -> achievements; a social-graph
mutation runs the guard and, when a friendship is accepted, the social
achievements of both users. Each public method is a single transaction:
every derived write commits together or none does. Notification events are
published only after the commit.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Collection
from datetime import date

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from hhg.config import Settings, get_settings
from hhg.exceptions import Rejected
from hhg.notifications import build_events, publish_events
from hhg.progress.achievement_service import (
    ActivityCounts,
    CatalogEntry,
    NoActivityCounts,
    load_catalog,
    unlock_achievements,
)
from hhg.progress.criteria import HABIT_LOG_TAGS, SOCIAL_TAGS, UserState
from hhg.progress.log_store import get_user, list_active_habits, lock_user_habit, upsert_log
from hhg.progress.milestone_service import detect_new_milestones, existing_milestone_keys, record_milestones
from hhg.progress.schemas import (
    BestFriendOut,
    FriendshipOut,
    GraphResult,
    MilestoneEvent,
    NotificationEvent,
    ProgressResult,
    UnlockedAchievement,
)
from hhg.progress.streak_service import StreakMemo, forward_run_end, utc_today
from hhg.redis_client import get_redis
from hhg.social import best_friend_service, friendship_service
from hhg.social.friendship_service import ACCEPTED

logger = structlog.get_logger()


class ProgressEngine:
    """Orchestrates the progress and social-graph rules for one session."""

    def __init__(
        self,
        db: AsyncSession,
        redis: object | None = None,
        settings: Settings | None = None,
        counts: ActivityCounts | None = None,
    ) -> None:
        self.db = db
        self.redis = redis if redis is not None else get_redis()
        self.settings = settings or get_settings()
        self.counts = counts or NoActivityCounts()
        self.memo = StreakMemo(self.settings)
        self._catalog: list[CatalogEntry] | None = None

    async def _load_catalog(self) -> list[CatalogEntry]:
        if self._catalog is None:
            self._catalog = await load_catalog(self.db)
        return self._catalog

    async def _transaction(self, work: Callable[[], Awaitable]):  # noqa: ANN202
        try:
            result = await work()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        finally:
            # Memoized streaks and the catalog only live for one event
            self.memo.clear()
            self._catalog = None
        return result

    async def _publish(self, events: list[NotificationEvent]) -> None:
        if not events:
            return
        for event in events:
            logger.info(f"{event.kind}_emitted", user_id=event.user_id, **event.payload)
        await publish_events(self.redis, events, self.settings.notification_channel_prefix)

    # --- Habit log ---

    async def record_habit_log(
        self,
        user_id: int,
        habit_id: int,
        log_date: date,
        completed: bool = True,
        *,
        mood_before: str | None = None,
        mood_after: str | None = None,
        difficulty: int | None = None,
        notes: str | None = None,
    ) -> ProgressResult:
        """Write the (habit, day) entry and apply everything it unlocks.

        The streak is read at the end of the completed run the entry belongs
        to, so backfilling a gap is judged against the streak it completes.
        """

        async def work() -> ProgressResult:
            await get_user(self.db, user_id)
            habit = await lock_user_habit(self.db, user_id, habit_id)

            as_of = await forward_run_end(self.db, user_id, habit_id, log_date, self.settings)
            previous = await self.memo.get(self.db, user_id, habit_id, as_of)

            await upsert_log(
                self.db,
                user_id,
                habit,
                log_date,
                completed,
                mood_before=mood_before,
                mood_after=mood_after,
                difficulty=difficulty,
                notes=notes,
            )
            self.memo.invalidate(user_id, habit_id)
            streak = await self.memo.get(self.db, user_id, habit_id, as_of)

            milestones = await self._apply_milestones(
                user_id, habit_id, previous, streak, habit.custom_milestones or []
            )
            state = await self._user_state(user_id, as_of, streak)
            achievements = await unlock_achievements(self.db, state, await self._load_catalog(), HABIT_LOG_TAGS)
            return ProgressResult(
                user_id=user_id,
                habit_id=habit_id,
                as_of=as_of,
                previous_streak=previous,
                streak=streak,
                milestones=milestones,
                achievements=achievements,
                events=build_events(milestones, achievements),
            )

        result = await self._transaction(work)
        await self._publish(result.events)
        logger.info(
            "habit_log_processed",
            user_id=user_id,
            habit_id=habit_id,
            log_date=log_date.isoformat(),
            completed=completed,
            previous_streak=result.previous_streak,
            streak=result.streak,
            milestones=len(result.milestones),
            achievements=len(result.achievements),
        )
        return result

    async def replay_habit(self, user_id: int, habit_id: int, as_of: date | None = None) -> ProgressResult:
        """Recompute the habit's streak from zero and emit whatever is missing.

        Already-recorded milestones and achievements are never emitted again,
        so replaying any number of times is safe.
        """
        as_of = as_of or utc_today()

        async def work() -> ProgressResult:
            await get_user(self.db, user_id)
            habit = await lock_user_habit(self.db, user_id, habit_id)
            self.memo.invalidate(user_id, habit_id)
            streak = await self.memo.get(self.db, user_id, habit_id, as_of)
            milestones = await self._apply_milestones(user_id, habit_id, 0, streak, habit.custom_milestones or [])
            state = await self._user_state(user_id, as_of, streak)
            achievements = await unlock_achievements(self.db, state, await self._load_catalog(), HABIT_LOG_TAGS)
            return ProgressResult(
                user_id=user_id,
                habit_id=habit_id,
                as_of=as_of,
                previous_streak=0,
                streak=streak,
                milestones=milestones,
                achievements=achievements,
                events=build_events(milestones, achievements),
            )

        result = await self._transaction(work)
        await self._publish(result.events)
        logger.info(
            "habit_replayed",
            user_id=user_id,
            habit_id=habit_id,
            streak=result.streak,
            milestones=len(result.milestones),
            achievements=len(result.achievements),
        )
        return result

    async def evaluate_achievements(self, user_id: int, as_of: date | None = None) -> list[UnlockedAchievement]:
        """Re-evaluate every catalog entry for ``user_id``."""
        as_of = as_of or utc_today()

        async def work() -> list[UnlockedAchievement]:
            await get_user(self.db, user_id)
            state = await self._user_state(user_id, as_of)
            return await unlock_achievements(self.db, state, await self._load_catalog())

        unlocked = await self._transaction(work)
        await self._publish(build_events(achievements=unlocked))
        logger.info("achievements_evaluated", user_id=user_id, unlocked=[a.slug for a in unlocked])
        return unlocked

    async def _apply_milestones(
        self,
        user_id: int,
        habit_id: int,
        previous: int,
        streak: int,
        custom: Collection[int],
    ) -> list[MilestoneEvent]:
        if streak <= previous:
            return []
        existing = await existing_milestone_keys(self.db, user_id, habit_id)
        detected = detect_new_milestones(
            previous,
            streak,
            existing,
            user_id=user_id,
            habit_id=habit_id,
            custom_thresholds=custom,
        )
        return await record_milestones(self.db, detected)

    async def _user_state(self, user_id: int, as_of: date, streak: int = 0) -> UserState:
        """Aggregate counters for achievement evaluation, as of ``as_of``.

        ``streak`` is the streak of the habit that triggered the evaluation;
        it counts even when that habit is no longer active.
        """
        max_streak = streak
        for habit in await list_active_habits(self.db, user_id):
            max_streak = max(max_streak, await self.memo.get(self.db, user_id, habit.id, as_of))

        return UserState(
            user_id=user_id,
            max_streak=max_streak,
            friends=await friendship_service.count_accepted_friends(self.db, user_id),
            rooms=await self.counts.rooms_created(user_id),
            support_given=await self.counts.support_given(user_id),
            custom=await self.counts.custom_metrics(user_id),
        )

    # --- Social graph ---

    async def _graph(self, operation: str, work: Callable[[], Awaitable[GraphResult]]) -> GraphResult:
        """Run a graph mutation; guard rejections come back as a result, not an exception."""
        try:
            result = await self._transaction(work)
        except Rejected as exc:
            logger.info("graph_mutation_rejected", operation=operation, reason=exc.reason.value, detail=exc.message)
            return GraphResult(accepted=False, rejection=exc.reason, message=exc.message)

        await self._publish(result.events)
        logger.info("graph_mutation_applied", operation=operation, achievements=len(result.achievements))
        return result

    async def request_friendship(self, requester_id: int, addressee_id: int) -> GraphResult:
        async def work() -> GraphResult:
            friendship = await friendship_service.request_friendship(
                self.db, requester_id, addressee_id, self.settings
            )
            return GraphResult(accepted=True, friendship=FriendshipOut.model_validate(friendship))

        return await self._graph("request_friendship", work)

    async def respond_friendship(self, friendship_id: int, responder_id: int, accept: bool) -> GraphResult:
        """Accept or decline; accepting evaluates social achievements for both users."""

        async def work() -> GraphResult:
            friendship = await friendship_service.respond_friendship(
                self.db, friendship_id, responder_id, accept
            )
            out = FriendshipOut.model_validate(friendship)
            achievements: list[UnlockedAchievement] = []
            if friendship.status == ACCEPTED:
                catalog = await self._load_catalog()
                today = utc_today()
                for user_id in (friendship.requester_id, friendship.addressee_id):
                    state = await self._user_state(user_id, today)
                    achievements += await unlock_achievements(self.db, state, catalog, SOCIAL_TAGS)
            return GraphResult(
                accepted=True,
                friendship=out,
                achievements=achievements,
                events=build_events(achievements=achievements),
            )

        return await self._graph("respond_friendship", work)

    async def block_user(self, actor_id: int, other_id: int) -> GraphResult:
        async def work() -> GraphResult:
            friendship = await friendship_service.block_user(self.db, actor_id, other_id)
            return GraphResult(accepted=True, friendship=FriendshipOut.model_validate(friendship))

        return await self._graph("block_user", work)

    async def add_best_friend(self, user_id: int, friend_id: int) -> GraphResult:
        async def work() -> GraphResult:
            link = await best_friend_service.add_best_friend(self.db, user_id, friend_id, self.settings)
            return GraphResult(accepted=True, best_friend=BestFriendOut.model_validate(link))

        return await self._graph("add_best_friend", work)

    async def remove_best_friend(self, user_id: int, friend_id: int) -> GraphResult:
        async def work() -> GraphResult:
            await best_friend_service.remove_best_friend(self.db, user_id, friend_id)
            return GraphResult(accepted=True, best_friend=BestFriendOut(user_id=user_id, friend_id=friend_id))

        return await self._graph("remove_best_friend", work)
