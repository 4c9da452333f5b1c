"""Append-only ledger of appointment status transitions."""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
)

from clinic_booking.core.clock import clinic_now
from clinic_booking.models.base import metadata

appointment_state_history = Table(
    "appointment_state_history",
    metadata,
    # Sequential id gives the insertion order of transitions
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
    ),
    # NULL for the creation record
    Column("previous_state", String(20), nullable=True),
    Column("new_state", String(20), nullable=False),
    # NULL when the public booking flow created the appointment
    Column("changed_by", Uuid, nullable=True),
    Column("reason", Text, nullable=True),
    Column("change_metadata", JSON, nullable=True),
    Column("changed_at", DateTime, nullable=False, default=clinic_now),
)

Index("idx_state_history_appointment", appointment_state_history.c.appointment_id)
Index("idx_state_history_changed_at", appointment_state_history.c.changed_at)
