"""
Error taxonomy for FlashPrep.

Every error raised by the study engine derives from FlashPrepError so the
CLI can report it without a traceback. None of these are fatal: restarting
the session or reconnecting the store recovers.
"""

from __future__ import annotations


class FlashPrepError(Exception):
    """Base class for all FlashPrep errors."""


class EmptyPoolError(FlashPrepError):
    """Raised when no card in the set matches the requested review filter."""

    def __init__(self, set_id: str, review_filter: str):
        self.set_id = set_id
        self.review_filter = review_filter
        super().__init__(f"No cards match the '{review_filter}' filter in set {set_id}")


class StorageUnavailableError(FlashPrepError):
    """Raised inside a record store backend when a read or write fails."""
    pass


class InvalidRatingError(FlashPrepError, ValueError):
    """Raised when a rating is not one of 0.5, 1, 1.5, ... 5."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Rating must be a half-star between 0.5 and 5, got {value!r}")


class InvalidTransitionError(FlashPrepError):
    """Raised when a session operation is called in the wrong phase."""

    def __init__(self, action: str, phase: str):
        self.action = action
        self.phase = phase
        super().__init__(f"Cannot {action} while session is {phase}")


class SetNotFoundError(FlashPrepError):
    """Raised when a set id does not resolve to a stored set."""

    def __init__(self, set_id: str):
        self.set_id = set_id
        super().__init__(f"Set not found: {set_id}")


class InvalidSetError(FlashPrepError, ValueError):
    """Raised for an unnamed set, a set without cards, or a malformed import file."""
    pass
