"""Achievement criteria parsing and evaluation."""

from __future__ import annotations

import pytest

from hhg.exceptions import ValidationError
from hhg.progress.criteria import (
    CRITERIA_TAGS,
    CustomCriteria,
    DaysCriteria,
    FriendsCriteria,
    RoomsCriteria,
    SupportGivenCriteria,
    UserState,
    evaluate,
    parse_criteria,
)
from hhg.progress.seed import ACHIEVEMENT_SEED_DATA


class TestParseCriteria:
    """JSON documents map onto the closed set of variants."""

    @pytest.mark.parametrize(
        ("document", "expected"),
        [
            ({"type": "days", "value": 7}, DaysCriteria),
            ({"type": "friends", "value": 1}, FriendsCriteria),
            ({"type": "rooms", "value": 1}, RoomsCriteria),
            ({"type": "support_given", "value": 10}, SupportGivenCriteria),
            ({"type": "custom", "value": 3, "metric": "journal_entries"}, CustomCriteria),
        ],
    )
    def test_variants(self, document, expected):
        criteria = parse_criteria(document)
        assert isinstance(criteria, expected)
        assert criteria.value == document["value"]

    def test_unknown_tag(self):
        with pytest.raises(ValidationError, match="Malformed"):
            parse_criteria({"type": "levels", "value": 3})

    def test_missing_value(self):
        with pytest.raises(ValidationError):
            parse_criteria({"type": "days"})

    def test_negative_value(self):
        with pytest.raises(ValidationError):
            parse_criteria({"type": "days", "value": -1})

    def test_extra_field(self):
        with pytest.raises(ValidationError):
            parse_criteria({"type": "friends", "value": 1, "metric": "x"})

    def test_custom_requires_metric(self):
        with pytest.raises(ValidationError):
            parse_criteria({"type": "custom", "value": 1})

    def test_not_a_mapping(self):
        with pytest.raises(ValidationError):
            parse_criteria(["days", 7])

    def test_seed_catalog_is_well_formed(self):
        for data in ACHIEVEMENT_SEED_DATA:
            assert parse_criteria(data["criteria"]).type in CRITERIA_TAGS


class TestEvaluate:
    """Each variant compares its counter with >=."""

    def test_days_inclusive(self):
        criteria = DaysCriteria(value=7)
        assert not evaluate(criteria, UserState(user_id=1, max_streak=6))
        assert evaluate(criteria, UserState(user_id=1, max_streak=7))
        assert evaluate(criteria, UserState(user_id=1, max_streak=8))

    def test_friends(self):
        criteria = FriendsCriteria(value=1)
        assert not evaluate(criteria, UserState(user_id=1))
        assert evaluate(criteria, UserState(user_id=1, friends=1))

    def test_rooms(self):
        assert evaluate(RoomsCriteria(value=1), UserState(user_id=1, rooms=2))

    def test_support_given(self):
        criteria = SupportGivenCriteria(value=10)
        assert not evaluate(criteria, UserState(user_id=1, support_given=9))
        assert evaluate(criteria, UserState(user_id=1, support_given=10))

    def test_custom_metric(self):
        criteria = CustomCriteria(value=3, metric="journal_entries")
        assert not evaluate(criteria, UserState(user_id=1))
        assert not evaluate(criteria, UserState(user_id=1, custom={"other": 10}))
        assert evaluate(criteria, UserState(user_id=1, custom={"journal_entries": 3}))

    def test_zero_threshold_always_met(self):
        assert evaluate(DaysCriteria(value=0), UserState(user_id=1))
