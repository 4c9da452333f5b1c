"""Availability query schemas."""

from datetime import date, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class SlotStatus(str, Enum):
    """Classification of a generated slot."""

    AVAILABLE = "available"
    BOOKED = "booked"
    HELD = "held"
    PAST = "past"


class DayStatus(str, Enum):
    """Whether the requested date can be booked at all."""

    OPEN = "open"
    UNAVAILABLE = "unavailable"


class SlotResponse(BaseModel):
    """A concrete (provider, date, time) slot."""

    provider_id: UUID
    provider_name: str | None = None
    slot_date: date
    slot_time: time
    display_time: str
    status: SlotStatus


class AvailabilityResponse(BaseModel):
    """Availability of one service on one date."""

    service_id: UUID
    requested_date: date
    day_status: DayStatus
    reason: str | None = None
    slots: list[SlotResponse]
    all_slots: list[SlotResponse]
    counts: dict[SlotStatus, int]


class BlockedDateEntry(BaseModel):
    """Public view of a blocked date."""

    blocked_date: date
    reason: str | None = None
