"""Recurring weekly schedule rules."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    Table,
    Time,
    Uuid,
    text,
)

from clinic_booking.core.clock import clinic_now
from clinic_booking.models.base import metadata, uuid_pk

schedule_rules = Table(
    "schedule_rules",
    metadata,
    uuid_pk(),
    Column(
        "provider_id",
        Uuid,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
    ),
    # NULL = every service the provider offers
    Column(
        "service_id",
        Uuid,
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=True,
    ),
    # 0=Sunday ... 6=Saturday
    Column("day_of_week", SmallInteger, nullable=False),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("slot_duration_minutes", Integer, nullable=False, server_default=text("30")),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime, nullable=False, default=clinic_now),
    Column("updated_at", DateTime, nullable=False, default=clinic_now, onupdate=clinic_now),
    CheckConstraint("day_of_week BETWEEN 0 AND 6", name="day_of_week_range"),
    CheckConstraint("start_time < end_time", name="window_order"),
    CheckConstraint("slot_duration_minutes > 0", name="positive_duration"),
)

Index(
    "idx_schedule_rules_provider_day",
    schedule_rules.c.provider_id,
    schedule_rules.c.day_of_week,
)
Index("idx_schedule_rules_service", schedule_rules.c.service_id)
