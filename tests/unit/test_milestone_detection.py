"""Milestone detection: threshold crossing and replay idempotence."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from hhg.progress.milestone_service import MILESTONE_LADDER, Threshold, detect_new_milestones, thresholds_for

AT = datetime(2026, 1, 7, 12, 0, tzinfo=timezone.utc)


def detect(previous: int, new: int, existing=(), custom=()):
    return detect_new_milestones(
        previous, new, set(existing), user_id=1, habit_id=10, custom_thresholds=custom, achieved_at=AT
    )


class TestThresholds:
    """Ladder and custom thresholds."""

    def test_ladder(self):
        assert [(t.milestone_type, t.value, t.days) for t in MILESTONE_LADDER] == [
            ("days", 1, 1),
            ("weeks", 1, 7),
            ("months", 1, 30),
        ]

    def test_custom_merged_in_day_order(self):
        thresholds = thresholds_for([14, 3])
        assert [t.days for t in thresholds] == [1, 3, 7, 14, 30]
        assert Threshold("custom", 14, 14) in thresholds

    def test_custom_deduplicated_and_positive_only(self):
        thresholds = thresholds_for([5, 5, 0, -2])
        assert [t for t in thresholds if t.milestone_type == "custom"] == [Threshold("custom", 5, 5)]


class TestDetectNewMilestones:
    """Threshold t fires iff previous < t <= new and not already emitted."""

    def test_first_day(self):
        events = detect(0, 1)
        assert [(e.milestone_type, e.value) for e in events] == [("days", 1)]
        assert events[0].achieved_at == AT
        assert events[0].user_id == 1 and events[0].habit_id == 10

    def test_crossing_a_week(self):
        events = detect(6, 7)
        assert [(e.milestone_type, e.value) for e in events] == [("weeks", 1)]

    def test_jump_crosses_several(self):
        events = detect(0, 30)
        assert [(e.milestone_type, e.value) for e in events] == [("days", 1), ("weeks", 1), ("months", 1)]

    def test_no_crossing(self):
        assert detect(8, 12) == []

    def test_threshold_equal_to_previous_does_not_fire(self):
        assert detect(7, 8) == []

    def test_decrease_emits_nothing(self):
        assert detect(10, 3) == []

    def test_existing_suppresses_replay(self):
        """A restarted streak reaching 7 again emits nothing new."""
        existing = {(10, "days", 1), (10, "weeks", 1)}
        assert detect(0, 7, existing) == []

    def test_existing_for_other_habit_does_not_suppress(self):
        existing = {(99, "weeks", 1)}
        events = detect(6, 7, existing)
        assert [e.key for e in events] == [(10, "weeks", 1)]

    def test_custom_threshold_fires(self):
        events = detect(13, 14, custom=[14])
        assert [(e.milestone_type, e.value) for e in events] == [("custom", 14)]

    def test_custom_threshold_not_reached(self):
        assert detect(0, 7, {(10, "days", 1), (10, "weeks", 1)}, custom=[14]) == []

    def test_negative_input_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            detect(-1, 3)

    def test_events_are_immutable(self):
        event = detect(0, 1)[0]
        with pytest.raises(Exception):
            event.value = 2
