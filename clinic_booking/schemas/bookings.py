"""Booking completion schemas."""

import re
from datetime import date
from enum import Enum
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, EmailStr, Field, field_validator, model_validator

from clinic_booking.core.clock import clinic_now
from clinic_booking.schemas.appointments import (
    AppointmentStatus,
    BookerRelationship,
    PaymentEvidence,
)
from clinic_booking.schemas.holds import normalize_phone

NAME_PATTERN = re.compile(r"^[A-Za-zÁÉÍÓÚáéíóúÑñÜü\s]{7,}$")


def validate_full_name(v: str) -> str:
    """Letters, accents and spaces only, at least 7 characters."""
    v = " ".join(v.split())
    if not NAME_PATTERN.match(v):
        raise ValueError("Name must contain only letters and spaces (at least 7 characters)")
    return v


FullName = Annotated[str, Field(max_length=200), AfterValidator(validate_full_name)]
Phone = Annotated[str, Field(max_length=20), AfterValidator(normalize_phone)]


class Gender(str, Enum):
    """Patient gender."""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class PatientInfo(BaseModel):
    """Patient being booked."""

    full_name: FullName
    birth_date: date
    gender: Gender
    phone: str | None = Field(None, max_length=20)
    email: EmailStr | None = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str | None) -> str | None:
        """Validate phone number format."""
        if v is None or not v.strip():
            return None
        return normalize_phone(v)

    @field_validator("birth_date")
    @classmethod
    def validate_age(cls, v: date) -> date:
        """Age must be between 0 and 120 years on the clinic's calendar."""
        today = clinic_now().date()
        age = today.year - v.year - ((today.month, today.day) < (v.month, v.day))
        if age < 0 or age > 120:
            raise ValueError("Age out of range (0-120 years)")
        return v


class BookerInfo(BaseModel):
    """Person booking on the patient's behalf."""

    full_name: FullName
    phone: Phone
    email: EmailStr | None = None
    relationship: BookerRelationship | None = None


class BookingComplete(BaseModel):
    """Convert a hold plus payment evidence into an appointment."""

    hold_token: str = Field(..., min_length=16, max_length=64)
    booking_for_self: bool
    patient: PatientInfo
    booker: BookerInfo | None = None
    is_first_visit: bool = True
    notes: str | None = Field(None, max_length=1000)
    payment_evidence: PaymentEvidence

    @model_validator(mode="after")
    def validate_contact(self) -> "BookingComplete":
        """Self bookings need the patient's phone, proxy bookings need a booker."""
        if self.booking_for_self and not self.patient.phone:
            raise ValueError("Patient phone is required when booking for yourself")
        if not self.booking_for_self and self.booker is None:
            raise ValueError("Booker details are required when booking for someone else")
        return self

    @property
    def contact_phone(self) -> str:
        """Phone used to find or create the patient record."""
        if self.booking_for_self:
            return self.patient.phone  # type: ignore[return-value]
        return self.booker.phone  # type: ignore[union-attr]


class BookingResponse(BaseModel):
    """Outcome of a successful booking."""

    appointment_id: UUID
    patient_id: UUID
    status: AppointmentStatus
    payment_reference: str | None = None
