"""Booking transaction: convert a live hold plus payment evidence into an appointment."""

from datetime import date, datetime, time
from uuid import UUID

import structlog
from sqlalchemy import and_, func, insert, select
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.core.clock import Clock, clinic_now
from clinic_booking.core.exceptions import AppException, ConflictException, StorageException
from clinic_booking.models.appointment_state_history import appointment_state_history
from clinic_booking.models.appointments import appointments
from clinic_booking.models.directory import patients
from clinic_booking.schemas.appointments import AppointmentSource, AppointmentStatus
from clinic_booking.schemas.bookings import BookingComplete, BookingResponse
from clinic_booking.services.availability_service import AvailabilityService
from clinic_booking.services.hold_service import SLOT_TAKEN_MESSAGE, HoldService
from clinic_booking.services.payment_evidence import (
    attach_payment_evidence,
    validate_payment_evidence,
)

logger = structlog.get_logger()


class BookingService:
    """Service completing the public booking flow."""

    def __init__(self, db: AsyncSession, clock: Clock = clinic_now):
        """Initialize service with database session and clock."""
        self.db = db
        self.clock = clock

    async def complete_booking(self, data: BookingComplete) -> BookingResponse:
        """
        Atomically create a pending appointment from a hold.

        The appointment, its creation history row, the payment proof and the
        removal of the hold commit together or not at all. The partial unique
        index on active appointments decides between concurrent bookings of
        the same slot; the loser is rolled back and its hold is left untouched.

        Args:
            data: Hold token, patient/booker details and payment evidence

        Returns:
            Created appointment summary

        Raises:
            ValidationException: If the payment evidence is not accepted
            NotFoundException: If the hold is unknown or already consumed
            ConflictException: If the hold expired or the slot was taken
            StorageException: If the database fails
        """
        validate_payment_evidence(data.payment_evidence)

        now = self.clock()
        holds = HoldService(self.db, self.clock)

        try:
            hold = await holds.validate_hold(data.hold_token, for_update=True)
            await self._ensure_slot_free(hold["provider_id"], hold["hold_date"], hold["hold_time"])

            patient_id = await self._resolve_patient(data, now)

            appointment_values = {
                "patient_id": patient_id,
                "provider_id": hold["provider_id"],
                "service_id": hold["service_id"],
                "appointment_date": hold["hold_date"],
                "appointment_time": hold["hold_time"],
                "status": AppointmentStatus.PENDING.value,
                "source": AppointmentSource.PUBLIC_BOOKING.value,
                "is_first_visit": data.is_first_visit,
                "notes": data.notes,
                "payment_reference": hold["payment_reference"],
                "state_changed_at": now,
                "created_at": now,
                "updated_at": now,
            }
            if not data.booking_for_self and data.booker is not None:
                appointment_values.update(
                    booked_by_name=data.booker.full_name,
                    booked_by_phone=data.booker.phone,
                    booked_by_email=data.booker.email,
                    booked_by_relationship=(
                        data.booker.relationship.value if data.booker.relationship else None
                    ),
                )

            result = await self.db.execute(
                insert(appointments).values(**appointment_values).returning(appointments.c.id)
            )
            appointment_id = result.scalar_one()

            await self.db.execute(
                insert(appointment_state_history).values(
                    appointment_id=appointment_id,
                    previous_state=None,
                    new_state=AppointmentStatus.PENDING.value,
                    changed_by=None,
                    reason="Public booking",
                    change_metadata={
                        "source": AppointmentSource.PUBLIC_BOOKING.value,
                        "hold_token_suffix": data.hold_token[-6:],
                        "booking_for_self": data.booking_for_self,
                    },
                    changed_at=now,
                )
            )

            await attach_payment_evidence(self.db, appointment_id, data.payment_evidence, now)
            await holds.consume(hold["id"])

            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            await self._raise_for_integrity_error(e, hold)
        except AppException:
            await self.db.rollback()
            raise
        except DBAPIError as e:
            await self.db.rollback()
            logger.error("booking_storage_failed", error=str(e))
            raise StorageException("Could not complete the booking, please try again") from e

        logger.info(
            "booking_completed",
            appointment_id=str(appointment_id),
            patient_id=str(patient_id),
            provider_id=str(hold["provider_id"]),
            slot_date=hold["hold_date"].isoformat(),
            slot_time=hold["hold_time"].isoformat(),
        )
        return BookingResponse(
            appointment_id=appointment_id,
            patient_id=patient_id,
            status=AppointmentStatus.PENDING,
            payment_reference=hold["payment_reference"],
        )

    async def _ensure_slot_free(self, provider_id: UUID, slot_date: date, slot_time: time) -> None:
        """Friendly early rejection; the unique index remains the arbiter."""
        availability = AvailabilityService(self.db, self.clock)
        if await availability.active_appointment_id(provider_id, slot_date, slot_time):
            raise ConflictException(SLOT_TAKEN_MESSAGE, code="slot_unavailable")

    async def _resolve_patient(self, data: BookingComplete, now: datetime) -> UUID:
        """Find the patient by contact phone and name, or register a new one."""
        contact_phone = data.contact_phone

        stmt = select(patients.c.id).where(
            and_(
                patients.c.phone == contact_phone,
                func.lower(patients.c.full_name) == data.patient.full_name.lower(),
                patients.c.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)
        patient_id = result.scalars().first()
        if patient_id:
            return patient_id

        result = await self.db.execute(
            insert(patients)
            .values(
                full_name=data.patient.full_name,
                birth_date=data.patient.birth_date,
                gender=data.patient.gender.value,
                phone=contact_phone,
                email=data.patient.email,
                created_at=now,
            )
            .returning(patients.c.id)
        )
        return result.scalar_one()

    async def _raise_for_integrity_error(self, error: IntegrityError, hold: RowMapping) -> None:
        """Translate a constraint violation into a conflict when the slot is now occupied."""
        availability = AvailabilityService(self.db, self.clock)
        occupant = await availability.active_appointment_id(
            hold["provider_id"], hold["hold_date"], hold["hold_time"]
        )
        if occupant:
            logger.info(
                "booking_conflict",
                provider_id=str(hold["provider_id"]),
                slot_date=hold["hold_date"].isoformat(),
                slot_time=hold["hold_time"].isoformat(),
            )
            raise ConflictException(SLOT_TAKEN_MESSAGE, code="slot_unavailable") from error

        logger.error("booking_integrity_error", error=str(error))
        raise StorageException("Could not complete the booking, please try again") from error
