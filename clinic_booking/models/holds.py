"""Short-lived reservation holds on a single slot."""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Time,
    UniqueConstraint,
    Uuid,
)

from clinic_booking.core.clock import clinic_now
from clinic_booking.models.base import metadata, uuid_pk

appointment_holds = Table(
    "appointment_holds",
    metadata,
    uuid_pk(),
    Column("token", String(64), nullable=False, unique=True),
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
    Column("hold_date", Date, nullable=False),
    Column("hold_time", Time, nullable=False),
    # Clinic-local; a hold with expires_at <= now is free for everybody
    Column("expires_at", DateTime, nullable=False),
    Column("contact_reference", String(100), nullable=True),
    Column("payment_reference", String(50), nullable=True, unique=True),
    Column("created_at", DateTime, nullable=False, default=clinic_now),
    # One row per slot: concurrent claims on the same slot collide here
    UniqueConstraint("provider_id", "hold_date", "hold_time", name="uq_appointment_holds_slot"),
)

Index("idx_appointment_holds_expires_at", appointment_holds.c.expires_at)
