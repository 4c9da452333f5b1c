"""Payment evidence checks and persistence."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.config import settings
from clinic_booking.core.exceptions import ValidationException
from clinic_booking.models.payment_proofs import payment_proofs
from clinic_booking.schemas.appointments import PaymentEvidence


def validate_payment_evidence(evidence: PaymentEvidence) -> None:
    """
    Check an uploaded proof against the accepted types and size limit.

    Raises:
        ValidationException: If the MIME type or size is not accepted
    """
    if evidence.mime_type.lower() not in settings.payment_evidence_allowed_types:
        raise ValidationException(
            "Payment evidence must be one of: "
            + ", ".join(settings.payment_evidence_allowed_types),
            code="invalid_payment_evidence",
        )

    if evidence.size_bytes <= 0:
        raise ValidationException("Payment evidence is empty", code="invalid_payment_evidence")

    if evidence.size_bytes > settings.payment_evidence_max_bytes:
        max_mb = settings.payment_evidence_max_bytes / (1024 * 1024)
        raise ValidationException(
            f"Payment evidence exceeds the {max_mb:g} MB limit",
            code="invalid_payment_evidence",
        )


async def attach_payment_evidence(
    db: AsyncSession,
    appointment_id: UUID,
    evidence: PaymentEvidence,
    uploaded_at: datetime,
) -> None:
    """Link a proof to an appointment inside the caller's transaction."""
    await db.execute(
        insert(payment_proofs).values(
            appointment_id=appointment_id,
            storage_ref=evidence.storage_ref,
            filename=evidence.filename,
            mime_type=evidence.mime_type.lower(),
            size_bytes=evidence.size_bytes,
            uploaded_at=uploaded_at,
        )
    )
