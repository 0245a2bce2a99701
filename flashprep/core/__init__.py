"""
Core Module - Shared error types.

All domain modules (flashprep/delivery/, flashprep/study/) raise the
exceptions defined here rather than declaring their own.
"""

from flashprep.core.exceptions import (
    EmptyPoolError,
    FlashPrepError,
    InvalidRatingError,
    InvalidSetError,
    InvalidTransitionError,
    SetNotFoundError,
    StorageUnavailableError,
)

__all__ = [
    "FlashPrepError",
    "EmptyPoolError",
    "StorageUnavailableError",
    "InvalidRatingError",
    "InvalidTransitionError",
    "SetNotFoundError",
    "InvalidSetError",
]
