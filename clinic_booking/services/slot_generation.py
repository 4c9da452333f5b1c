"""Expansion of recurring weekly schedule rules into slot start times."""

from datetime import date, time

MINUTES_PER_DAY = 24 * 60


def day_of_week(target: date) -> int:
    """
    Get the schedule day-of-week index for a date.

    Schedule rules number days 0=Sunday ... 6=Saturday, while
    ``date.weekday()`` uses 0=Monday.
    """
    return (target.weekday() + 1) % 7


def _to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def _from_minutes(value: int) -> time:
    return time(hour=value // 60, minute=value % 60)


def expand_schedule_window(
    start_time: time,
    end_time: time,
    slot_duration_minutes: int,
) -> list[time]:
    """
    Generate ordered slot start times for one schedule window.

    Slots start at ``start_time`` and step by ``slot_duration_minutes`` while
    the whole slot still fits before ``end_time``. A trailing remainder
    shorter than one slot is dropped.

    Args:
        start_time: Window start (inclusive)
        end_time: Window end (exclusive for slot starts)
        slot_duration_minutes: Length of every slot

    Returns:
        Slot start times in ascending order

    Raises:
        ValueError: If the duration is not positive
    """
    if slot_duration_minutes <= 0:
        raise ValueError("slot_duration_minutes must be positive")

    start = _to_minutes(start_time)
    end = _to_minutes(end_time)

    slots: list[time] = []
    current = start
    while current + slot_duration_minutes <= end and current < MINUTES_PER_DAY:
        slots.append(_from_minutes(current))
        current += slot_duration_minutes

    return slots


def expand_schedule_rule(rule: dict, target: date) -> list[time]:
    """
    Expand a schedule rule for a concrete date.

    Args:
        rule: Schedule rule row mapping
        target: Calendar date the slots are for

    Returns:
        Slot start times, empty when the rule is inactive or for another weekday
    """
    if not rule["is_active"] or rule["day_of_week"] != day_of_week(target):
        return []

    return expand_schedule_window(
        rule["start_time"],
        rule["end_time"],
        rule["slot_duration_minutes"],
    )
