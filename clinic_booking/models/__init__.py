"""Database models."""

from clinic_booking.models.appointment_state_history import appointment_state_history
from clinic_booking.models.appointments import appointments
from clinic_booking.models.base import metadata
from clinic_booking.models.blocked_dates import blocked_dates
from clinic_booking.models.directory import patients, provider_services, providers, services
from clinic_booking.models.holds import appointment_holds
from clinic_booking.models.payment_proofs import payment_proofs
from clinic_booking.models.schedules import schedule_rules

__all__ = [
    "appointment_holds",
    "appointment_state_history",
    "appointments",
    "blocked_dates",
    "metadata",
    "patients",
    "payment_proofs",
    "provider_services",
    "providers",
    "schedule_rules",
    "services",
]
