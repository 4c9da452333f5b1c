"""Blocked date schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field


class BlockedDateCreate(BaseModel):
    """Schema for blocking a calendar date."""

    blocked_date: date
    reason: str | None = Field(None, max_length=255)


class BlockedDateResponse(BaseModel):
    """Schema for blocked date response."""

    id: UUID
    blocked_date: date
    reason: str | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
