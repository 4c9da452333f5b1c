"""Schedule rule schemas."""

from datetime import datetime, time
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ScheduleRuleCreate(BaseModel):
    """Schema for creating a recurring weekly schedule rule."""

    provider_id: UUID
    service_id: UUID | None = None
    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday ... 6=Saturday")
    start_time: time
    end_time: time
    slot_duration_minutes: int = Field(default=30, gt=0, le=24 * 60)

    @model_validator(mode="after")
    def validate_window(self) -> "ScheduleRuleCreate":
        """Validate the window is not empty."""
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class ScheduleRuleResponse(BaseModel):
    """Schema for schedule rule response."""

    id: UUID
    provider_id: UUID
    service_id: UUID | None
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration_minutes: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
