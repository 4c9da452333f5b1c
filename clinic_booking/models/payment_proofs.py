"""Uploaded payment evidence linked to an appointment."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Table, Uuid

from clinic_booking.core.clock import clinic_now
from clinic_booking.models.base import metadata, uuid_pk

payment_proofs = Table(
    "payment_proofs",
    metadata,
    uuid_pk(),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    # Stable reference returned by the file storage service
    Column("storage_ref", String(500), nullable=False),
    Column("filename", String(255), nullable=False),
    Column("mime_type", String(100), nullable=False),
    Column("size_bytes", Integer, nullable=False),
    Column("uploaded_at", DateTime, nullable=False, default=clinic_now),
)
