"""Clinic-wide calendar exceptions."""

from sqlalchemy import Boolean, Column, Date, DateTime, String, Table, text

from clinic_booking.core.clock import clinic_now
from clinic_booking.models.base import metadata, uuid_pk

blocked_dates = Table(
    "blocked_dates",
    metadata,
    uuid_pk(),
    Column("blocked_date", Date, nullable=False, unique=True),
    Column("reason", String(255), nullable=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true"), index=True),
    Column("created_at", DateTime, nullable=False, default=clinic_now),
)
