"""Clinic-local wall clock."""

from collections.abc import Callable
from datetime import datetime
from zoneinfo import ZoneInfo

from clinic_booking.config import settings

Clock = Callable[[], datetime]


def clinic_now() -> datetime:
    """
    Get the current clinic-local wall-clock time.

    Timestamps are stored naive in the clinic's timezone, so the tzinfo
    is dropped after conversion.

    Returns:
        Naive datetime in the clinic timezone
    """
    return datetime.now(ZoneInfo(settings.clinic_timezone)).replace(tzinfo=None)
