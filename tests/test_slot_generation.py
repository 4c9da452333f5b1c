"""Tests for schedule rule expansion."""

from datetime import date, time

import pytest

from clinic_booking.services.slot_generation import (
    day_of_week,
    expand_schedule_rule,
    expand_schedule_window,
)


def _rule(**overrides) -> dict:
    rule = {
        "is_active": True,
        "day_of_week": 1,
        "start_time": time(9, 0),
        "end_time": time(11, 0),
        "slot_duration_minutes": 60,
    }
    rule.update(overrides)
    return rule


def test_day_of_week_starts_on_sunday():
    """Sunday is 0 and Saturday is 6."""
    assert day_of_week(date(2030, 1, 6)) == 0
    assert day_of_week(date(2030, 1, 7)) == 1
    assert day_of_week(date(2030, 1, 12)) == 6


def test_expand_window_exact_fit():
    """Two hour window with 60 minute slots yields 09:00 and 10:00."""
    assert expand_schedule_window(time(9, 0), time(11, 0), 60) == [time(9, 0), time(10, 0)]


def test_expand_window_drops_partial_slot():
    """A remainder shorter than one slot is discarded."""
    slots = expand_schedule_window(time(9, 0), time(10, 50), 30)
    assert slots == [time(9, 0), time(9, 30), time(10, 0)]


@pytest.mark.parametrize(
    ("start", "end", "duration"),
    [
        (time(9, 0), time(14, 0), 30),
        (time(8, 15), time(12, 40), 45),
        (time(16, 0), time(20, 0), 20),
        (time(0, 0), time(23, 59), 90),
    ],
)
def test_expand_window_slot_count_and_spacing(start: time, end: time, duration: int):
    """floor(window / d) slots, d minutes apart, none ending after the window."""
    window = (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
    slots = expand_schedule_window(start, end, duration)

    assert len(slots) == window // duration
    assert slots[0] == start

    minutes = [s.hour * 60 + s.minute for s in slots]
    assert all(b - a == duration for a, b in zip(minutes, minutes[1:], strict=False))
    assert minutes[-1] + duration <= end.hour * 60 + end.minute


def test_expand_window_shorter_than_one_slot():
    """Window shorter than the duration yields nothing."""
    assert expand_schedule_window(time(9, 0), time(9, 20), 30) == []


def test_expand_window_rejects_non_positive_duration():
    """Zero duration would never advance."""
    with pytest.raises(ValueError):
        expand_schedule_window(time(9, 0), time(10, 0), 0)


def test_expand_rule_for_matching_weekday():
    """Rule for Monday expands on a Monday."""
    assert expand_schedule_rule(_rule(), date(2030, 1, 7)) == [time(9, 0), time(10, 0)]


def test_expand_rule_other_weekday_is_empty():
    """Rule for Monday yields nothing on a Tuesday."""
    assert expand_schedule_rule(_rule(), date(2030, 1, 8)) == []


def test_expand_inactive_rule_is_empty():
    """Inactive rules never produce slots."""
    assert expand_schedule_rule(_rule(is_active=False), date(2030, 1, 7)) == []
