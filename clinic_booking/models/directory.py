"""
Directory tables owned by collaborating services.

Providers, services and patients are managed elsewhere; the scheduling core
only reads them (and creates patients during public booking).
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
    text,
)

from clinic_booking.core.clock import clinic_now
from clinic_booking.models.base import metadata, uuid_pk

providers = Table(
    "providers",
    metadata,
    uuid_pk(),
    Column("full_name", String(200), nullable=False),
    Column("specialty", String(200), nullable=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime, nullable=False, default=clinic_now),
)

services = Table(
    "services",
    metadata,
    uuid_pk(),
    Column("name", String(200), nullable=False),
    Column("description", Text, nullable=True),
    Column("price", Numeric(10, 2), nullable=False),
    Column("deposit_percentage", Integer, nullable=False, server_default=text("50")),
    Column("duration_minutes", Integer, nullable=False, server_default=text("30")),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime, nullable=False, default=clinic_now),
)

# Which services a provider offers; provider-wide schedule rules apply only to these
provider_services = Table(
    "provider_services",
    metadata,
    Column(
        "provider_id",
        Uuid,
        ForeignKey("providers.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "service_id",
        Uuid,
        ForeignKey("services.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

patients = Table(
    "patients",
    metadata,
    uuid_pk(),
    Column("full_name", String(200), nullable=False),
    Column("birth_date", Date, nullable=True),
    Column("gender", String(20), nullable=True),
    Column("phone", String(20), nullable=True, index=True),
    Column("email", String(255), nullable=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime, nullable=False, default=clinic_now),
)
