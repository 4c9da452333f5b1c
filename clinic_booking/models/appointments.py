"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Time,
    Uuid,
    text,
)

from clinic_booking.core.clock import clinic_now
from clinic_booking.models.base import metadata, uuid_pk

ACTIVE_STATUS_PREDICATE = "status IN ('pending', 'confirmed', 'in_progress')"

appointments = Table(
    "appointments",
    metadata,
    uuid_pk(),
    # Ownership / references
    Column(
        "patient_id",
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "provider_id",
        Uuid,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "service_id",
        Uuid,
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
    ),
    # Concrete slot coordinates, never a schedule rule id
    Column("appointment_date", Date, nullable=False),
    Column("appointment_time", Time, nullable=False),
    # Status management
    Column("status", String(20), nullable=False, server_default=text("'pending'")),
    Column("source", String(20), nullable=False, server_default=text("'public_booking'")),
    Column("is_first_visit", Boolean, nullable=False, server_default=text("true")),
    Column("notes", Text, nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    Column("payment_reference", String(50), nullable=True, unique=True),
    # Proxy booking contact
    Column("booked_by_name", String(200), nullable=True),
    Column("booked_by_phone", String(20), nullable=True, index=True),
    Column("booked_by_email", String(255), nullable=True),
    Column("booked_by_relationship", String(20), nullable=True),
    # Per-transition audit fields
    Column("confirmed_by", Uuid, nullable=True),
    Column("confirmed_at", DateTime, nullable=True),
    Column("cancelled_by", Uuid, nullable=True),
    Column("cancelled_at", DateTime, nullable=True),
    Column("arrived_at", DateTime, nullable=True),
    Column("arrived_marked_by", Uuid, nullable=True),
    Column("entered_consultation_at", DateTime, nullable=True),
    Column("entered_consultation_by", Uuid, nullable=True),
    Column("completed_at", DateTime, nullable=True),
    Column("completed_by", Uuid, nullable=True),
    # Mirror of the latest history row
    Column("state_changed_at", DateTime, nullable=True),
    Column("state_changed_by", Uuid, nullable=True),
    Column("state_change_reason", Text, nullable=True),
    Column("created_at", DateTime, nullable=False, default=clinic_now),
    Column("updated_at", DateTime, nullable=False, default=clinic_now),
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled', 'no-show')",
        name="status_check",
    ),
)

# At most one active appointment per provider slot. This index is the arbiter
# for concurrent bookings; the application-level check only gives a nicer error.
Index(
    "uq_appointments_active_slot",
    appointments.c.provider_id,
    appointments.c.appointment_date,
    appointments.c.appointment_time,
    unique=True,
    postgresql_where=text(ACTIVE_STATUS_PREDICATE),
    sqlite_where=text(ACTIVE_STATUS_PREDICATE),
)
Index(
    "idx_appointments_date_time",
    appointments.c.appointment_date,
    appointments.c.appointment_time,
)
Index("idx_appointments_status", appointments.c.status)
Index("idx_appointments_patient_id", appointments.c.patient_id)
