from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta, timezone

import pytest

from study_aid.review.scheduler import (
    InvalidRating,
    InvalidState,
    RecallRating,
    ReviewState,
    initial_state,
    next_state,
    normalize_state,
)


NOW = datetime(2026, 10, 17, 8, 30, tzinfo=timezone.utc)


def _state(interval: int, ease: float, reps: int) -> ReviewState:
    return ReviewState(
        interval_days=interval,
        ease_factor=ease,
        repetitions=reps,
        next_review_at=NOW,
    )


@pytest.mark.parametrize(
    ("start", "rating", "expected"),
    [
        ((1, 2.5, 0), "medium", (3, 2.5, 1)),
        ((3, 2.5, 1), "easy", (10, 2.5, 2)),
        ((10, 2.5, 2), "hard", (1, 2.3, 0)),
        ((1, 1.3, 0), "hard", (1, 1.3, 0)),
        ((5, 2.0, 3), "medium", (10, 2.0, 4)),
    ],
)
def test_review_scenarios(start, rating, expected) -> None:
    result = next_state(_state(*start), rating, NOW)

    interval, ease, reps = expected
    assert result.interval_days == interval
    assert result.ease_factor == pytest.approx(ease)
    assert result.repetitions == reps
    assert result.next_review_at == NOW + timedelta(days=interval)


def test_first_review_of_a_new_card() -> None:
    fresh = initial_state(NOW)
    assert fresh == ReviewState(1, 2.5, 0, NOW)

    easy = next_state(fresh, RecallRating.EASY, NOW)
    medium = next_state(fresh, RecallRating.MEDIUM, NOW)
    hard = next_state(fresh, RecallRating.HARD, NOW)

    assert (easy.interval_days, easy.ease_factor, easy.repetitions) == (3, 2.5, 1)
    assert (medium.interval_days, medium.ease_factor, medium.repetitions) == (3, 2.5, 1)
    assert (hard.interval_days, hard.repetitions) == (1, 0)
    assert hard.ease_factor == pytest.approx(2.3)


def test_unknown_rating_is_rejected_and_state_is_untouched() -> None:
    current = _state(4, 2.1, 2)
    snapshot = ReviewState(4, 2.1, 2, NOW)

    with pytest.raises(InvalidRating):
        next_state(current, "impossible", NOW)

    assert current == snapshot


@pytest.mark.parametrize("value", ["Easy", "HARD", " medium", "", None, 3, 1.0])
def test_rating_parsing_is_exact(value) -> None:
    with pytest.raises(InvalidRating):
        RecallRating.parse(value)


def test_rating_parsing_accepts_wire_values() -> None:
    assert RecallRating.parse("easy") is RecallRating.EASY
    assert RecallRating.parse("medium") is RecallRating.MEDIUM
    assert RecallRating.parse("hard") is RecallRating.HARD
    assert RecallRating.parse(RecallRating.HARD) is RecallRating.HARD


def test_repeated_hard_holds_the_ease_floor() -> None:
    state = _state(30, 1.5, 6)
    for _ in range(5):
        state = next_state(state, RecallRating.HARD, NOW)
        assert state.ease_factor >= 1.3
        assert state.interval_days == 1
        assert state.repetitions == 0
    assert state.ease_factor == 1.3


def test_repeated_easy_holds_the_ease_ceiling() -> None:
    state = _state(1, 2.5, 0)
    for _ in range(6):
        state = next_state(state, RecallRating.EASY, NOW)
        assert state.ease_factor == 2.5


def test_easy_never_shrinks_interval_or_ease() -> None:
    for interval in (1, 2, 3, 7, 45, 400, 3000):
        for ease in (1.3, 1.45, 1.8, 2.2, 2.5):
            current = _state(interval, ease, 2)
            result = next_state(current, RecallRating.EASY, NOW)
            assert result.interval_days >= current.interval_days
            assert result.ease_factor >= current.ease_factor


def test_hard_always_resets() -> None:
    for interval in (1, 6, 90, 5000):
        for reps in (0, 1, 12):
            result = next_state(_state(interval, 2.0, reps), RecallRating.HARD, NOW)
            assert result.interval_days == 1
            assert result.repetitions == 0


def test_bounds_hold_over_random_rating_sequences() -> None:
    rng = random.Random(20261017)
    ratings = list(RecallRating)
    for _ in range(200):
        state = _state(rng.randint(1, 50), rng.uniform(1.3, 2.5), rng.randint(0, 10))
        when = NOW
        for _ in range(40):
            state = next_state(state, rng.choice(ratings), when, max_interval_days=36500)
            assert 1.3 <= state.ease_factor <= 2.5
            assert 1 <= state.interval_days <= 36500
            assert state.repetitions >= 0
            when = state.next_review_at


def test_medium_at_the_ease_floor_keeps_a_one_day_minimum() -> None:
    result = next_state(_state(1, 1.3, 0), RecallRating.MEDIUM, NOW)
    assert result.interval_days == 1
    assert result.next_review_at == NOW + timedelta(days=1)


def test_rounding_is_half_away_from_zero() -> None:
    # 3 * 1.5 = 4.5 rounds up, unlike Python's round-half-to-even.
    result = next_state(_state(3, 1.5, 1), RecallRating.MEDIUM, NOW)
    assert result.interval_days == 5


def test_same_inputs_give_same_output() -> None:
    current = _state(7, 1.9, 3)
    assert next_state(current, "easy", NOW) == next_state(current, "easy", NOW)


def test_input_state_is_not_mutated() -> None:
    current = _state(7, 1.9, 3)
    result = next_state(current, "medium", NOW)
    assert result is not current
    assert current == ReviewState(7, 1.9, 3, NOW)


def test_long_intervals_keep_day_precision() -> None:
    result = next_state(_state(5000, 2.5, 30), RecallRating.MEDIUM, NOW)
    assert result.interval_days == 12500
    assert result.next_review_at == NOW + timedelta(days=12500)


def test_intervals_grow_without_a_cap_by_default() -> None:
    result = next_state(_state(400, 2.5, 8), RecallRating.EASY, NOW)
    assert result.interval_days == 1300


def test_interval_cap_is_applied_when_configured() -> None:
    result = next_state(_state(400, 2.5, 8), RecallRating.EASY, NOW, max_interval_days=365)
    assert result.interval_days == 365
    assert result.next_review_at == NOW + timedelta(days=365)


def test_interval_cap_must_be_positive() -> None:
    with pytest.raises(ValueError):
        next_state(_state(1, 2.5, 0), RecallRating.EASY, NOW, max_interval_days=0)


def test_out_of_range_due_date_raises_invalid_state() -> None:
    with pytest.raises(InvalidState):
        next_state(_state(3_000_000, 2.5, 40), RecallRating.MEDIUM, NOW)


def test_naive_review_time_is_rejected() -> None:
    with pytest.raises(InvalidState):
        next_state(_state(1, 2.5, 0), RecallRating.EASY, datetime(2026, 10, 17, 8, 30))


def test_due_date_keeps_local_time_across_dst_change() -> None:
    zoneinfo = pytest.importorskip("zoneinfo")
    try:
        berlin = zoneinfo.ZoneInfo("Europe/Berlin")
    except zoneinfo.ZoneInfoNotFoundError:
        pytest.skip("Time zone data is not available.")

    # Clocks move forward on 2026-03-29 in Berlin.
    now = datetime(2026, 3, 28, 9, 0, tzinfo=berlin)
    result = next_state(_state(1, 2.0, 1), RecallRating.MEDIUM, now)

    assert result.interval_days == 2
    assert result.next_review_at.date() == datetime(2026, 3, 30).date()
    assert (result.next_review_at.hour, result.next_review_at.minute) == (9, 0)


def test_normalize_clamps_out_of_range_values(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="study_aid.review.scheduler"):
        clamped = normalize_state(_state(0, 3.1, -2))

    assert (clamped.interval_days, clamped.ease_factor, clamped.repetitions) == (1, 2.5, 0)
    assert len(caplog.records) == 3

    assert normalize_state(_state(-5, 0.9, 0)).ease_factor == 1.3


def test_normalize_leaves_valid_states_alone() -> None:
    valid = _state(12, 1.7, 4)
    assert normalize_state(valid) is valid
    assert normalize_state(normalize_state(valid)) == valid


def test_normalize_accepts_whole_float_counts() -> None:
    normalized = normalize_state(_state(3.0, 2.0, 1.0))
    assert normalized.interval_days == 3
    assert type(normalized.interval_days) is int
    assert type(normalized.repetitions) is int


@pytest.mark.parametrize(
    "state",
    [
        _state(1, float("nan"), 0),
        _state(1, float("inf"), 0),
        _state(1, "2.5", 0),
        _state(True, 2.5, 0),
        _state(2.5, 2.5, 0),
        _state(1, 2.5, None),
    ],
)
def test_unrecoverable_states_raise(state: ReviewState) -> None:
    with pytest.raises(InvalidState):
        normalize_state(state)


def test_out_of_range_state_is_clamped_before_scheduling() -> None:
    result = next_state(_state(0, 4.0, -1), RecallRating.MEDIUM, NOW)
    assert result.interval_days == 3
    assert result.ease_factor == 2.5
    assert result.repetitions == 1


def test_record_round_trip_uses_store_field_names() -> None:
    record = {
        "interval_days": 6,
        "ease_factor": 2.2,
        "repetitions": 2,
        "next_review": "2026-10-20T08:30:00Z",
    }
    state = ReviewState.from_record(record)

    assert state.next_review_at == datetime(2026, 10, 20, 8, 30, tzinfo=timezone.utc)
    assert state.to_record() == {
        "interval_days": 6,
        "ease_factor": 2.2,
        "repetitions": 2,
        "next_review": "2026-10-20T08:30:00+00:00",
    }
    assert state.to_record(iso_timestamps=False)["next_review"] == state.next_review_at


def test_record_with_naive_timestamp_is_read_as_utc() -> None:
    state = ReviewState.from_record(
        {"interval_days": 1, "ease_factor": 2.5, "repetitions": 0, "next_review": "2026-10-20T08:30:00"}
    )
    assert state.next_review_at.tzinfo is timezone.utc


def test_record_errors_raise_invalid_state() -> None:
    with pytest.raises(InvalidState):
        ReviewState.from_record({"interval_days": 1, "ease_factor": 2.5, "repetitions": 0})
    with pytest.raises(InvalidState):
        ReviewState.from_record(
            {"interval_days": 1, "ease_factor": 2.5, "repetitions": 0, "next_review": "tomorrow"}
        )
