"""Error taxonomy for the progress engine.

``ValidationError``: malformed input (self-reference, bad date range, bad
criteria document). ``ConflictError``: the request collides with existing
state (duplicate pair, cap reached, blocked). ``NotFoundError``: a referenced
habit, achievement, friendship or user does not exist.

Social-graph rejections additionally derive from ``Rejected`` and carry a
``RejectReason`` so callers can branch on the reason without string matching.
"""

from __future__ import annotations

from enum import Enum


class HHGError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(HHGError):
    """Input rejected synchronously; never retried."""


class ConflictError(HHGError):
    """Request conflicts with existing state."""


class NotFoundError(HHGError):
    """Referenced entity is absent."""


class RejectReason(str, Enum):
    SELF_REFERENCE = "self_reference"
    DUPLICATE = "duplicate"
    ALREADY_MAX = "already_max"
    BLOCKED = "blocked"
    INVALID_TRANSITION = "invalid_transition"
    NOT_FRIENDS = "not_friends"
    NOT_PARTICIPANT = "not_participant"


class Rejected(HHGError):
    """A social-graph mutation the guard refused."""

    reason: RejectReason

    def __init__(self, message: str) -> None:
        super().__init__(message)


class SelfReference(Rejected, ValidationError):
    reason = RejectReason.SELF_REFERENCE


class NotParticipant(Rejected, ValidationError):
    reason = RejectReason.NOT_PARTICIPANT


class Duplicate(Rejected, ConflictError):
    reason = RejectReason.DUPLICATE


class AlreadyMax(Rejected, ConflictError):
    reason = RejectReason.ALREADY_MAX


class Blocked(Rejected, ConflictError):
    reason = RejectReason.BLOCKED


class InvalidTransition(Rejected, ConflictError):
    reason = RejectReason.INVALID_TRANSITION


class NotFriends(Rejected, ConflictError):
    reason = RejectReason.NOT_FRIENDS
