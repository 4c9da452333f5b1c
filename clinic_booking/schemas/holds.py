"""Hold schemas for the public booking flow."""

import re
from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


def normalize_phone(v: str) -> str:
    """Strip separators and require exactly 10 digits."""
    cleaned = re.sub(r"\D", "", v)
    if len(cleaned) != 10:
        raise ValueError("Phone number must have exactly 10 digits")
    return cleaned


class HoldCreate(BaseModel):
    """Schema for provisionally claiming a slot."""

    provider_id: UUID
    service_id: UUID
    appointment_date: date
    appointment_time: time
    contact_phone: str | None = Field(None, max_length=20)

    @field_validator("contact_phone")
    @classmethod
    def validate_phone(cls, v: str | None) -> str | None:
        """Validate phone number format."""
        if v is None or not v.strip():
            return None
        return normalize_phone(v)

    @field_validator("appointment_time")
    @classmethod
    def truncate_seconds(cls, v: time) -> time:
        """Slots start on whole minutes."""
        return v.replace(second=0, microsecond=0)


class HoldResponse(BaseModel):
    """Issued hold."""

    token: str
    provider_id: UUID
    service_id: UUID
    appointment_date: date
    appointment_time: time
    expires_at: datetime
    payment_reference: str | None = None

    model_config = {"from_attributes": True}
