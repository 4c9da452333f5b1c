"""Hold manager: short-lived provisional claims on a slot."""

import secrets
from datetime import date, datetime, time, timedelta
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, exists, insert, or_, select
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.config import settings
from clinic_booking.core.clock import Clock, clinic_now
from clinic_booking.core.exceptions import (
    AppException,
    ConflictException,
    NotFoundException,
    StorageException,
)
from clinic_booking.models.appointments import appointments
from clinic_booking.models.holds import appointment_holds
from clinic_booking.schemas.availability import SlotStatus
from clinic_booking.schemas.holds import HoldCreate, HoldResponse
from clinic_booking.services.availability_service import AvailabilityService

logger = structlog.get_logger()

SLOT_TAKEN_MESSAGE = "The selected slot is no longer available"

# Draws before giving up on finding a free payment reference
PAYMENT_REFERENCE_ATTEMPTS = 5


def generate_payment_reference() -> str:
    """Generate a bank transfer reference such as ``CLINIC-A7F2E9``."""
    return f"{settings.payment_reference_prefix}-{secrets.token_hex(3).upper()}"


class HoldService:
    """Service issuing, validating and releasing slot holds."""

    def __init__(self, db: AsyncSession, clock: Clock = clinic_now):
        """Initialize service with database session and clock."""
        self.db = db
        self.clock = clock

    async def create_hold(self, data: HoldCreate) -> HoldResponse:
        """
        Provisionally claim an available slot for ``HOLD_TTL_MINUTES``.

        Availability is re-checked against storage here, never trusted from the
        client's earlier view. The one-row-per-slot unique constraint decides
        between concurrent requests for the same slot.

        Args:
            data: Hold request

        Returns:
            Issued hold with its token and expiry

        Raises:
            NotFoundException: If the provider or service does not exist
            ConflictException: If the slot is not available
            StorageException: If the database fails
        """
        now = self.clock()
        availability = AvailabilityService(self.db, self.clock)
        token = secrets.token_hex(32)
        expires_at = now + timedelta(minutes=settings.hold_ttl_minutes)

        try:
            await self.release_expired_for_slot(
                data.provider_id, data.appointment_date, data.appointment_time, now
            )

            status = await availability.check_slot(
                data.provider_id,
                data.service_id,
                data.appointment_date,
                data.appointment_time,
            )
            if status != SlotStatus.AVAILABLE:
                raise ConflictException(
                    f"The selected slot is {status.value}",
                    code="slot_unavailable",
                )

            payment_reference = await self._new_payment_reference()
            stmt = (
                insert(appointment_holds)
                .values(
                    token=token,
                    provider_id=data.provider_id,
                    service_id=data.service_id,
                    hold_date=data.appointment_date,
                    hold_time=data.appointment_time,
                    expires_at=expires_at,
                    contact_reference=data.contact_phone,
                    payment_reference=payment_reference,
                    created_at=now,
                )
                .returning(appointment_holds)
            )
            result = await self.db.execute(stmt)
            row = result.mappings().one()

            # A staff booking may have committed after the availability check
            if await availability.active_appointment_id(
                data.provider_id, data.appointment_date, data.appointment_time
            ):
                raise ConflictException(SLOT_TAKEN_MESSAGE, code="slot_unavailable")

            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(
                "hold_rejected",
                provider_id=str(data.provider_id),
                slot_date=data.appointment_date.isoformat(),
                slot_time=data.appointment_time.isoformat(),
                reason="concurrent_claim",
            )
            raise ConflictException(SLOT_TAKEN_MESSAGE, code="slot_unavailable") from e
        except AppException as e:
            await self.db.rollback()
            logger.info(
                "hold_rejected",
                provider_id=str(data.provider_id),
                slot_date=data.appointment_date.isoformat(),
                slot_time=data.appointment_time.isoformat(),
                reason=e.code,
            )
            raise
        except DBAPIError as e:
            await self.db.rollback()
            logger.error("hold_storage_failed", error=str(e))
            raise StorageException("Could not reserve the slot, please try again") from e

        logger.info(
            "hold_created",
            provider_id=str(data.provider_id),
            slot_date=data.appointment_date.isoformat(),
            slot_time=data.appointment_time.isoformat(),
            expires_at=expires_at.isoformat(),
        )
        return HoldResponse(
            token=row["token"],
            provider_id=row["provider_id"],
            service_id=row["service_id"],
            appointment_date=row["hold_date"],
            appointment_time=row["hold_time"],
            expires_at=row["expires_at"],
            payment_reference=row["payment_reference"],
        )

    async def _new_payment_reference(self) -> str:
        """
        Draw a payment reference no hold or appointment carries yet.

        Raises:
            StorageException: If every draw collided
        """
        for _ in range(PAYMENT_REFERENCE_ATTEMPTS):
            reference = generate_payment_reference()
            stmt = select(
                or_(
                    exists().where(appointments.c.payment_reference == reference),
                    exists().where(appointment_holds.c.payment_reference == reference),
                )
            )
            result = await self.db.execute(stmt)
            if not result.scalar():
                return reference
            logger.warning("payment_reference_collision", reference=reference)

        raise StorageException("Could not issue a payment reference, please try again")

    async def validate_hold(self, token: str, for_update: bool = False) -> RowMapping:
        """
        Get a hold that is still live.

        Does not commit; callers run it inside their own unit of work.

        Args:
            token: Hold token
            for_update: Lock the hold row until the surrounding transaction ends

        Returns:
            Hold row

        Raises:
            NotFoundException: If the token is unknown or already consumed
            ConflictException: If the hold has expired
        """
        stmt = select(appointment_holds).where(appointment_holds.c.token == token)
        if for_update:
            stmt = stmt.with_for_update()

        result = await self.db.execute(stmt)
        hold = result.mappings().first()

        if not hold:
            raise NotFoundException("Hold not found or already used", code="hold_not_found")

        if hold["expires_at"] <= self.clock():
            raise ConflictException(
                "The reservation has expired, please pick a slot again",
                code="hold_expired",
            )

        return hold

    async def release_hold(self, token: str) -> bool:
        """
        Drop a hold the client abandoned.

        Releasing is advisory; unknown or expired tokens are not an error.

        Returns:
            True if a hold row was removed
        """
        stmt = (
            delete(appointment_holds)
            .where(appointment_holds.c.token == token)
            .returning(appointment_holds.c.id)
        )
        result = await self.db.execute(stmt)
        released = result.scalar_one_or_none() is not None
        await self.db.commit()

        logger.info("hold_released", released=released)
        return released

    async def release_expired_for_slot(
        self,
        provider_id: UUID,
        slot_date: date,
        slot_time: time,
        now: datetime,
    ) -> None:
        """Delete an expired hold occupying the slot's row so a new claim can take it."""
        await self.db.execute(
            delete(appointment_holds).where(
                and_(
                    appointment_holds.c.provider_id == provider_id,
                    appointment_holds.c.hold_date == slot_date,
                    appointment_holds.c.hold_time == slot_time,
                    appointment_holds.c.expires_at <= now,
                )
            )
        )

    async def claim_slot(
        self,
        provider_id: UUID,
        service_id: UUID,
        slot_date: date,
        slot_time: time,
        now: datetime,
    ) -> str:
        """
        Take the slot's hold row for the rest of the current transaction.

        Used by staff bookings so that they serialize with public holds on the
        same unique key. The claim is born expired, so readers never see it as
        a live hold, and it must be dropped with :meth:`drop_claim` before commit.

        Raises:
            IntegrityError: If a live hold already occupies the slot
        """
        await self.release_expired_for_slot(provider_id, slot_date, slot_time, now)

        token = f"claim-{secrets.token_hex(16)}"
        await self.db.execute(
            insert(appointment_holds).values(
                token=token,
                provider_id=provider_id,
                service_id=service_id,
                hold_date=slot_date,
                hold_time=slot_time,
                expires_at=now,
                created_at=now,
            )
        )
        return token

    async def drop_claim(self, token: str) -> None:
        """Remove a claim row taken with :meth:`claim_slot`."""
        await self.db.execute(delete(appointment_holds).where(appointment_holds.c.token == token))

    async def consume(self, hold_id: UUID) -> None:
        """Delete a hold converted into an appointment."""
        await self.db.execute(delete(appointment_holds).where(appointment_holds.c.id == hold_id))

    async def purge_expired_holds(self) -> int:
        """
        Delete every expired hold.

        Storage hygiene only; expired holds are already ignored by readers.

        Returns:
            Number of rows removed
        """
        result = await self.db.execute(
            delete(appointment_holds).where(appointment_holds.c.expires_at <= self.clock())
        )
        await self.db.commit()

        purged = result.rowcount or 0
        logger.info("expired_holds_purged", count=purged)
        return purged
