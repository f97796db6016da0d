"""Achievement criteria documents and their evaluation.

Catalog criteria are stored as JSON (``{"type": "days", "value": 7}``) and
parsed into a closed set of variants when the catalog is loaded, so a
malformed document is reported once at load time instead of on every
evaluation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from hhg.exceptions import ValidationError


class _Criteria(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    value: int = Field(ge=0)


class DaysCriteria(_Criteria):
    """Longest current streak across any habit."""

    type: Literal["days"] = "days"


class FriendsCriteria(_Criteria):
    """Accepted friendships."""

    type: Literal["friends"] = "friends"


class RoomsCriteria(_Criteria):
    """Rooms built in the user's space."""

    type: Literal["rooms"] = "rooms"


class SupportGivenCriteria(_Criteria):
    """Support actions given to other users."""

    type: Literal["support_given"] = "support_given"


class CustomCriteria(_Criteria):
    """Named counter supplied by a collaborator."""

    type: Literal["custom"] = "custom"
    metric: str = Field(min_length=1, max_length=64)


Criteria = Annotated[
    DaysCriteria | FriendsCriteria | RoomsCriteria | SupportGivenCriteria | CustomCriteria,
    Field(discriminator="type"),
]

_criteria_adapter: TypeAdapter[Criteria] = TypeAdapter(Criteria)

CRITERIA_TAGS = frozenset({"days", "friends", "rooms", "support_given", "custom"})

# Tags worth evaluating for each kind of triggering event
HABIT_LOG_TAGS = frozenset({"days", "custom"})
SOCIAL_TAGS = frozenset({"friends"})


def parse_criteria(document: Any) -> Criteria:
    """Parse a criteria JSON document into its typed variant."""
    try:
        return _criteria_adapter.validate_python(document)
    except PydanticValidationError as exc:
        raise ValidationError(f"Malformed achievement criteria {document!r}: {exc.errors()}") from exc


@dataclass
class UserState:
    """Pre-aggregated state an achievement is judged against."""

    user_id: int
    max_streak: int = 0
    friends: int = 0
    rooms: int = 0
    support_given: int = 0
    custom: dict[str, int] = field(default_factory=dict)


def evaluate(criteria: Criteria, state: UserState) -> bool:
    """True when ``state`` meets the criteria threshold (inclusive)."""
    if isinstance(criteria, DaysCriteria):
        return state.max_streak >= criteria.value
    if isinstance(criteria, FriendsCriteria):
        return state.friends >= criteria.value
    if isinstance(criteria, RoomsCriteria):
        return state.rooms >= criteria.value
    if isinstance(criteria, SupportGivenCriteria):
        return state.support_given >= criteria.value
    if isinstance(criteria, CustomCriteria):
        return state.custom.get(criteria.metric, 0) >= criteria.value
    raise TypeError(f"Unknown criteria variant: {type(criteria).__name__}")
