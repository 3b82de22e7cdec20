"""Spaced-repetition scheduling for flashcard reviews.

A lightweight SM-2 variant driven by three recall ratings. Everything here is
pure: the caller supplies the current time and persists the returned state.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional


LOGGER = logging.getLogger(__name__)


DEFAULT_INTERVAL_DAYS = 1
DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 2.5
EASY_BONUS = 1.3
EASY_EASE_STEP = 0.15
HARD_EASE_PENALTY = 0.2

# Column names of the review state on a stored flashcard.
REVIEW_RECORD_FIELDS = ("interval_days", "ease_factor", "repetitions", "next_review")


class ReviewError(ValueError):
    """Base class for rejected review input."""


class InvalidRating(ReviewError):
    """Raised when a rating is not one of the supported recall ratings."""


class InvalidState(ReviewError):
    """Raised when a review state cannot be brought back within its invariants."""


class RecallRating(str, Enum):
    """How hard the learner found it to recall a card."""

    HARD = "hard"
    MEDIUM = "medium"
    EASY = "easy"

    @classmethod
    def parse(cls, value: object) -> "RecallRating":
        """Return the rating for an exact, case-sensitive wire value."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for rating in cls:
                if rating.value == value:
                    return rating
        raise InvalidRating(f"Unsupported recall rating: {value!r}.")


@dataclass(frozen=True, slots=True)
class ReviewState:
    """Memory state of one flashcard for one learner."""

    interval_days: int
    ease_factor: float
    repetitions: int
    next_review_at: datetime

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ReviewState":
        """Build a state from the four persisted flashcard fields."""
        try:
            return cls(
                interval_days=record["interval_days"],
                ease_factor=record["ease_factor"],
                repetitions=record["repetitions"],
                next_review_at=_parse_timestamp(record["next_review"]),
            )
        except KeyError as exc:
            raise InvalidState(f"Review record is missing field {exc.args[0]!r}.") from exc

    def to_record(self, *, iso_timestamps: bool = True) -> dict[str, Any]:
        """Serialize to the field names used by the flashcard store.

        ``next_review`` is an ISO-8601 string unless ``iso_timestamps`` is false,
        in which case the datetime is kept for ORM columns.
        """
        next_review: Any = self.next_review_at
        if iso_timestamps:
            next_review = next_review.isoformat()
        return {
            "interval_days": self.interval_days,
            "ease_factor": self.ease_factor,
            "repetitions": self.repetitions,
            "next_review": next_review,
        }


def _parse_timestamp(value: object) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidState(f"Invalid next_review timestamp: {value!r}.") from exc
    else:
        raise InvalidState(f"Invalid next_review timestamp: {value!r}.")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_aware(now: datetime) -> None:
    if not isinstance(now, datetime) or now.tzinfo is None or now.utcoffset() is None:
        raise InvalidState("Review time must be a timezone-aware datetime.")


def _coerce_count(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidState(f"{name} must be a number, got {value!r}.")
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise InvalidState(f"{name} must be a whole number, got {value!r}.")
        return int(value)
    return value


def _coerce_ease(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidState(f"ease_factor must be a number, got {value!r}.")
    ease = float(value)
    if not math.isfinite(ease):
        raise InvalidState(f"ease_factor must be finite, got {value!r}.")
    return ease


def _round_half_away(value: float) -> int:
    # Products are always positive here, so half-up equals half-away-from-zero.
    return math.floor(value + 0.5)


def initial_state(now: Optional[datetime] = None) -> ReviewState:
    """Return the state of a card that has never been reviewed, due immediately."""
    if now is None:
        now = datetime.now(timezone.utc)
    return ReviewState(
        interval_days=DEFAULT_INTERVAL_DAYS,
        ease_factor=DEFAULT_EASE_FACTOR,
        repetitions=0,
        next_review_at=now,
    )


def normalize_state(state: ReviewState) -> ReviewState:
    """Clamp a state back within its invariants.

    Out-of-range values are pulled to the nearest valid value and logged. A
    state that is already valid is returned unchanged. Values that are not
    numbers at all raise :class:`InvalidState`.
    """
    interval_days = _coerce_count("interval_days", state.interval_days)
    ease_factor = _coerce_ease(state.ease_factor)
    repetitions = _coerce_count("repetitions", state.repetitions)

    if interval_days < 1:
        LOGGER.warning("Clamping interval_days %s up to 1.", interval_days)
        interval_days = 1
    if ease_factor < MIN_EASE_FACTOR:
        LOGGER.warning("Clamping ease_factor %s up to %s.", ease_factor, MIN_EASE_FACTOR)
        ease_factor = MIN_EASE_FACTOR
    elif ease_factor > MAX_EASE_FACTOR:
        LOGGER.warning("Clamping ease_factor %s down to %s.", ease_factor, MAX_EASE_FACTOR)
        ease_factor = MAX_EASE_FACTOR
    if repetitions < 0:
        LOGGER.warning("Clamping repetitions %s up to 0.", repetitions)
        repetitions = 0

    if (
        interval_days == state.interval_days
        and ease_factor == state.ease_factor
        and repetitions == state.repetitions
        and type(state.interval_days) is int
        and type(state.repetitions) is int
    ):
        return state

    return replace(
        state,
        interval_days=interval_days,
        ease_factor=ease_factor,
        repetitions=repetitions,
    )


def next_state(
    current: ReviewState,
    rating: RecallRating | str,
    now: datetime,
    *,
    max_interval_days: Optional[int] = None,
) -> ReviewState:
    """Return the state that follows a review of ``current`` rated ``rating`` at ``now``.

    ``current`` is clamped with :func:`normalize_state` first. Intervals grow
    without bound unless ``max_interval_days`` is given. The due date is ``now``
    plus the interval in calendar days, keeping the local time of day.
    """
    rating = RecallRating.parse(rating)
    _require_aware(now)
    if max_interval_days is not None and max_interval_days < 1:
        raise ValueError("max_interval_days must be a positive integer.")

    state = normalize_state(current)

    if rating is RecallRating.EASY:
        interval = _round_half_away(state.interval_days * state.ease_factor * EASY_BONUS)
        ease = min(state.ease_factor + EASY_EASE_STEP, MAX_EASE_FACTOR)
        repetitions = state.repetitions + 1
    elif rating is RecallRating.MEDIUM:
        interval = _round_half_away(state.interval_days * state.ease_factor)
        ease = state.ease_factor
        repetitions = state.repetitions + 1
    else:
        interval = 1
        ease = max(state.ease_factor - HARD_EASE_PENALTY, MIN_EASE_FACTOR)
        repetitions = 0

    interval = max(1, interval)
    if max_interval_days is not None and interval > max_interval_days:
        interval = max_interval_days

    try:
        next_review_at = now + timedelta(days=interval)
    except OverflowError as exc:
        raise InvalidState(
            f"Interval of {interval} days puts the next review out of range."
        ) from exc

    return ReviewState(
        interval_days=interval,
        ease_factor=ease,
        repetitions=repetitions,
        next_review_at=next_review_at,
    )
