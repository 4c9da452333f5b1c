"""Initial schema - scheduling, holds, appointments and audit trail.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_STATUS_PREDICATE = "status IN ('pending', 'confirmed', 'in_progress')"


def upgrade() -> None:
    """Upgrade database schema."""
    # Directory tables
    op.create_table(
        "providers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("specialty", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_providers"),
    )

    op.create_table(
        "services",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("deposit_percentage", sa.Integer(), server_default=sa.text("50"), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), server_default=sa.text("30"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_services"),
    )

    op.create_table(
        "provider_services",
        sa.Column("provider_id", sa.Uuid(), nullable=False),
        sa.Column("service_id", sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(
            ["provider_id"],
            ["providers.id"],
            name="fk_provider_services_provider_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["service_id"],
            ["services.id"],
            name="fk_provider_services_service_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("provider_id", "service_id", name="pk_provider_services"),
    )

    op.create_table(
        "patients",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(length=20), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_patients"),
    )
    op.create_index("ix_patients_phone", "patients", ["phone"])

    # Recurring weekly templates
    op.create_table(
        "schedule_rules",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("provider_id", sa.Uuid(), nullable=False),
        sa.Column("service_id", sa.Uuid(), nullable=True),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column(
            "slot_duration_minutes", sa.Integer(), server_default=sa.text("30"), nullable=False
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "day_of_week BETWEEN 0 AND 6", name="schedule_rules_day_of_week_range"
        ),
        sa.CheckConstraint("start_time < end_time", name="schedule_rules_window_order"),
        sa.CheckConstraint(
            "slot_duration_minutes > 0", name="schedule_rules_positive_duration"
        ),
        sa.ForeignKeyConstraint(
            ["provider_id"],
            ["providers.id"],
            name="fk_schedule_rules_provider_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["service_id"],
            ["services.id"],
            name="fk_schedule_rules_service_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_schedule_rules"),
    )
    op.create_index(
        "idx_schedule_rules_provider_day", "schedule_rules", ["provider_id", "day_of_week"]
    )
    op.create_index("idx_schedule_rules_service", "schedule_rules", ["service_id"])

    op.create_table(
        "blocked_dates",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("blocked_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_blocked_dates"),
        sa.UniqueConstraint("blocked_date", name="uq_blocked_dates_blocked_date"),
    )
    op.create_index("ix_blocked_dates_is_active", "blocked_dates", ["is_active"])

    # Holds: one row per slot, expired rows are reclaimed by the next claimer
    op.create_table(
        "appointment_holds",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("provider_id", sa.Uuid(), nullable=False),
        sa.Column("service_id", sa.Uuid(), nullable=False),
        sa.Column("hold_date", sa.Date(), nullable=False),
        sa.Column("hold_time", sa.Time(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("contact_reference", sa.String(length=100), nullable=True),
        sa.Column("payment_reference", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["provider_id"],
            ["providers.id"],
            name="fk_appointment_holds_provider_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["service_id"],
            ["services.id"],
            name="fk_appointment_holds_service_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_appointment_holds"),
        sa.UniqueConstraint("token", name="uq_appointment_holds_token"),
        sa.UniqueConstraint(
            "payment_reference", name="uq_appointment_holds_payment_reference"
        ),
        sa.UniqueConstraint(
            "provider_id", "hold_date", "hold_time", name="uq_appointment_holds_slot"
        ),
    )
    op.create_index("idx_appointment_holds_expires_at", "appointment_holds", ["expires_at"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("patient_id", sa.Uuid(), nullable=False),
        sa.Column("provider_id", sa.Uuid(), nullable=False),
        sa.Column("service_id", sa.Uuid(), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("appointment_time", sa.Time(), nullable=False),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column(
            "source", sa.String(length=20), server_default=sa.text("'public_booking'"), nullable=False
        ),
        sa.Column("is_first_visit", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("payment_reference", sa.String(length=50), nullable=True),
        sa.Column("booked_by_name", sa.String(length=200), nullable=True),
        sa.Column("booked_by_phone", sa.String(length=20), nullable=True),
        sa.Column("booked_by_email", sa.String(length=255), nullable=True),
        sa.Column("booked_by_relationship", sa.String(length=20), nullable=True),
        sa.Column("confirmed_by", sa.Uuid(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by", sa.Uuid(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("arrived_at", sa.DateTime(), nullable=True),
        sa.Column("arrived_marked_by", sa.Uuid(), nullable=True),
        sa.Column("entered_consultation_at", sa.DateTime(), nullable=True),
        sa.Column("entered_consultation_by", sa.Uuid(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_by", sa.Uuid(), nullable=True),
        sa.Column("state_changed_at", sa.DateTime(), nullable=True),
        sa.Column("state_changed_by", sa.Uuid(), nullable=True),
        sa.Column("state_change_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled', 'no-show')",
            name="appointments_status_check",
        ),
        sa.ForeignKeyConstraint(
            ["patient_id"],
            ["patients.id"],
            name="fk_appointments_patient_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["provider_id"],
            ["providers.id"],
            name="fk_appointments_provider_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["service_id"],
            ["services.id"],
            name="fk_appointments_service_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_appointments"),
        sa.UniqueConstraint("payment_reference", name="uq_appointments_payment_reference"),
    )
    op.create_index(
        "uq_appointments_active_slot",
        "appointments",
        ["provider_id", "appointment_date", "appointment_time"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_STATUS_PREDICATE),
        sqlite_where=sa.text(ACTIVE_STATUS_PREDICATE),
    )
    op.create_index(
        "idx_appointments_date_time", "appointments", ["appointment_date", "appointment_time"]
    )
    op.create_index("idx_appointments_status", "appointments", ["status"])
    op.create_index("idx_appointments_patient_id", "appointments", ["patient_id"])
    op.create_index("ix_appointments_booked_by_phone", "appointments", ["booked_by_phone"])

    # Append-only audit ledger
    op.create_table(
        "appointment_state_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("appointment_id", sa.Uuid(), nullable=False),
        sa.Column("previous_state", sa.String(length=20), nullable=True),
        sa.Column("new_state", sa.String(length=20), nullable=False),
        sa.Column("changed_by", sa.Uuid(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("change_metadata", sa.JSON(), nullable=True),
        sa.Column("changed_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["appointment_id"],
            ["appointments.id"],
            name="fk_appointment_state_history_appointment_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_appointment_state_history"),
    )
    op.create_index(
        "idx_state_history_appointment", "appointment_state_history", ["appointment_id"]
    )
    op.create_index("idx_state_history_changed_at", "appointment_state_history", ["changed_at"])

    op.create_table(
        "payment_proofs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("appointment_id", sa.Uuid(), nullable=False),
        sa.Column("storage_ref", sa.String(length=500), nullable=False),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("mime_type", sa.String(length=100), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["appointment_id"],
            ["appointments.id"],
            name="fk_payment_proofs_appointment_id",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_payment_proofs"),
    )
    op.create_index("ix_payment_proofs_appointment_id", "payment_proofs", ["appointment_id"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table("payment_proofs")
    op.drop_table("appointment_state_history")
    op.drop_table("appointments")
    op.drop_table("appointment_holds")
    op.drop_table("blocked_dates")
    op.drop_table("schedule_rules")
    op.drop_table("patients")
    op.drop_table("provider_services")
    op.drop_table("services")
    op.drop_table("providers")
