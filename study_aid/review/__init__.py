"""Spaced-repetition scheduling and the study session built around it."""

from .scheduler import (
    InvalidRating,
    InvalidState,
    RecallRating,
    ReviewError,
    ReviewState,
    initial_state,
    next_state,
    normalize_state,
)

__all__ = [
    "InvalidRating",
    "InvalidState",
    "RecallRating",
    "ReviewError",
    "ReviewState",
    "initial_state",
    "next_state",
    "normalize_state",
]
