"""Appointment schemas for request/response validation."""

from datetime import date, datetime, time
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


ACTIVE_STATUSES = frozenset(
    {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, AppointmentStatus.IN_PROGRESS}
)


class AppointmentSource(str, Enum):
    """Where an appointment was created."""

    PUBLIC_BOOKING = "public_booking"
    STAFF = "staff"


class BookerRelationship(str, Enum):
    """Relationship of a proxy booker to the patient."""

    CHILD = "child"
    PARENT = "parent"
    SPOUSE = "spouse"
    SIBLING = "sibling"
    OTHER = "other"


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    patient_id: UUID
    provider_id: UUID
    service_id: UUID
    appointment_date: date
    appointment_time: time
    status: AppointmentStatus
    source: AppointmentSource
    is_first_visit: bool
    notes: str | None = None
    cancellation_reason: str | None = None
    payment_reference: str | None = None
    booked_by_name: str | None = None
    booked_by_phone: str | None = None
    booked_by_email: str | None = None
    booked_by_relationship: BookerRelationship | None = None
    confirmed_by: UUID | None = None
    confirmed_at: datetime | None = None
    cancelled_by: UUID | None = None
    cancelled_at: datetime | None = None
    arrived_at: datetime | None = None
    arrived_marked_by: UUID | None = None
    entered_consultation_at: datetime | None = None
    entered_consultation_by: UUID | None = None
    completed_at: datetime | None = None
    completed_by: UUID | None = None
    state_changed_at: datetime | None = None
    state_changed_by: UUID | None = None
    state_change_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StateHistoryEntry(BaseModel):
    """One row of the appointment audit ledger."""

    id: int
    appointment_id: UUID
    previous_state: AppointmentStatus | None
    new_state: AppointmentStatus
    changed_by: UUID | None
    reason: str | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="change_metadata")
    changed_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class AppointmentDetailResponse(BaseModel):
    """Appointment together with its full transition history (oldest first)."""

    appointment: AppointmentResponse
    history: list[StateHistoryEntry]


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    provider_id: UUID | None = None
    from_date: date | None = None
    to_date: date | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class StateTransitionRequest(BaseModel):
    """Request to move an appointment to another status."""

    target_state: AppointmentStatus
    reason: str | None = Field(None, max_length=1000)
    metadata: dict[str, Any] | None = None

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str | None) -> str | None:
        """Treat blank reasons as missing."""
        if v is None:
            return None
        v = v.strip()
        return v or None


class PaymentEvidence(BaseModel):
    """Reference to an uploaded payment proof held by the file storage service."""

    storage_ref: str = Field(..., min_length=1, max_length=500)
    filename: str = Field(..., min_length=1, max_length=255)
    mime_type: str = Field(..., min_length=1, max_length=100)
    size_bytes: int


class StaffAppointmentCreate(BaseModel):
    """Schema for staff booking a slot directly (starts confirmed)."""

    patient_id: UUID
    provider_id: UUID
    service_id: UUID
    appointment_date: date
    appointment_time: time
    is_first_visit: bool = True
    notes: str | None = Field(None, max_length=1000)
    payment_evidence: PaymentEvidence | None = None

    @model_validator(mode="after")
    def normalize_time(self) -> "StaffAppointmentCreate":
        """Slots start on whole minutes."""
        self.appointment_time = self.appointment_time.replace(second=0, microsecond=0)
        return self
