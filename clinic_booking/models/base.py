"""Shared metadata for all tables."""

from uuid import uuid4

from sqlalchemy import Column, MetaData, Uuid

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(table_name)s_%(column_0_N_name)s",
        "uq": "uq_%(table_name)s_%(column_0_N_name)s",
        "ck": "%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s",
        "pk": "pk_%(table_name)s",
    }
)


def uuid_pk() -> Column:
    """Primary key column generating UUIDs client side (portable across backends)."""
    return Column("id", Uuid, primary_key=True, default=uuid4)
