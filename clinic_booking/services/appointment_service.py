"""Appointment service: state machine, audit trail and staff bookings."""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.core.clock import Clock, clinic_now
from clinic_booking.core.exceptions import (
    AppException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    StorageException,
)
from clinic_booking.core.security import Actor
from clinic_booking.models.appointment_state_history import appointment_state_history
from clinic_booking.models.appointments import appointments
from clinic_booking.models.directory import patients
from clinic_booking.schemas.appointments import (
    AppointmentDetailResponse,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentSource,
    AppointmentStatus,
    StaffAppointmentCreate,
    StateHistoryEntry,
    StateTransitionRequest,
)
from clinic_booking.schemas.availability import SlotStatus
from clinic_booking.services.appointment_state import (
    ensure_transition_allowed,
    transition_values,
)
from clinic_booking.services.availability_service import AvailabilityService
from clinic_booking.services.hold_service import SLOT_TAKEN_MESSAGE, HoldService
from clinic_booking.services.payment_evidence import (
    attach_payment_evidence,
    validate_payment_evidence,
)

logger = structlog.get_logger()


class AppointmentService:
    """Service for managing appointments."""

    def __init__(self, db: AsyncSession, clock: Clock = clinic_now):
        """Initialize service with database session and clock."""
        self.db = db
        self.clock = clock

    async def get_appointment(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """
        Get appointment by ID.

        Args:
            appointment_id: Appointment ID
            actor: Requesting actor

        Returns:
            Appointment details

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If a patient asks for someone else's appointment
        """
        row = await self._fetch(appointment_id)
        self._ensure_can_view(row, actor)
        return AppointmentResponse.model_validate(row)

    async def get_appointment_detail(
        self,
        appointment_id: UUID,
        actor: Actor,
    ) -> AppointmentDetailResponse:
        """Get an appointment with its full transition history, oldest first."""
        row = await self._fetch(appointment_id)
        self._ensure_can_view(row, actor)

        stmt = (
            select(appointment_state_history)
            .where(appointment_state_history.c.appointment_id == appointment_id)
            .order_by(appointment_state_history.c.id.asc())
        )
        result = await self.db.execute(stmt)
        history = [StateHistoryEntry.model_validate(dict(h)) for h in result.mappings().all()]

        return AppointmentDetailResponse(
            appointment=AppointmentResponse.model_validate(row),
            history=history,
        )

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Paginated list of appointments
        """
        conditions = []

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.provider_id:
            conditions.append(appointments.c.provider_id == filters.provider_id)

        if filters.from_date:
            conditions.append(appointments.c.appointment_date >= filters.from_date)

        if filters.to_date:
            conditions.append(appointments.c.appointment_date <= filters.to_date)

        count_stmt = select(func.count()).select_from(appointments).where(*conditions)
        total_result = await self.db.execute(count_stmt)
        total = total_result.scalar() or 0

        offset = (filters.page - 1) * filters.page_size

        stmt = (
            select(appointments)
            .where(*conditions)
            .order_by(
                appointments.c.appointment_date.desc(),
                appointments.c.appointment_time.desc(),
            )
            .limit(filters.page_size)
            .offset(offset)
        )

        result = await self.db.execute(stmt)
        items = [AppointmentResponse.model_validate(dict(row)) for row in result.mappings().all()]

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=items,
        )

    async def change_state(
        self,
        appointment_id: UUID,
        request: StateTransitionRequest,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Apply one lifecycle transition and record it in the audit trail.

        The UPDATE only matches while the status is still the one the
        transition was validated against, so concurrent staff actions cannot
        silently overwrite each other. The history row is written in the same
        transaction.

        Args:
            appointment_id: Appointment ID
            request: Target state, reason and optional metadata
            actor: Who applies the transition

        Returns:
            Updated appointment

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the actor may not apply this transition
            ConflictException: If the transition is illegal or the status changed meanwhile
            ValidationException: If a cancellation has no reason
            StorageException: If the database fails
        """
        row = await self._fetch(appointment_id)
        current = AppointmentStatus(row["status"])
        target = request.target_state

        self._ensure_can_transition(row, target, actor)
        ensure_transition_allowed(current, target)

        now = self.clock()
        values = transition_values(current, target, actor.id, request.reason, now, row)

        try:
            stmt = (
                update(appointments)
                .where(
                    and_(
                        appointments.c.id == appointment_id,
                        appointments.c.status == current.value,
                    )
                )
                .values(**values)
                .returning(appointments)
            )
            result = await self.db.execute(stmt)
            updated = result.mappings().first()

            if updated is None:
                raise ConflictException(
                    "The appointment was changed by someone else, please reload",
                    code="stale_state",
                )

            await self._record_transition(
                appointment_id,
                previous=current,
                new=target,
                actor_id=actor.id,
                reason=request.reason,
                metadata=request.metadata,
                now=now,
            )
            await self.db.commit()
        except AppException:
            await self.db.rollback()
            raise
        except DBAPIError as e:
            await self.db.rollback()
            logger.error("appointment_transition_failed", error=str(e))
            raise StorageException("Could not update the appointment, please try again") from e

        logger.info(
            "appointment_state_changed",
            appointment_id=str(appointment_id),
            previous_state=current.value,
            new_state=target.value,
            actor_id=str(actor.id),
        )
        return AppointmentResponse.model_validate(dict(updated))

    async def mark_arrived(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """
        Record that the patient of a confirmed appointment is in the waiting room.

        Not a status change, so no history row is written. Marking twice keeps
        the first arrival time.

        Raises:
            NotFoundException: If appointment not found
            ConflictException: If the appointment is not confirmed
        """
        row = await self._fetch(appointment_id)
        if row["status"] != AppointmentStatus.CONFIRMED.value:
            raise ConflictException(
                f"Only confirmed appointments can be marked as arrived (is {row['status']})",
                code="illegal_transition",
            )
        if row["arrived_at"] is not None:
            return AppointmentResponse.model_validate(row)

        now = self.clock()
        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.status == AppointmentStatus.CONFIRMED.value,
                )
            )
            .values(arrived_at=now, arrived_marked_by=actor.id, updated_at=now)
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        updated = result.mappings().first()

        if updated is None:
            await self.db.rollback()
            raise ConflictException(
                "The appointment was changed by someone else, please reload",
                code="stale_state",
            )

        await self.db.commit()
        logger.info(
            "appointment_arrival_marked",
            appointment_id=str(appointment_id),
            actor_id=str(actor.id),
        )
        return AppointmentResponse.model_validate(dict(updated))

    async def create_staff_appointment(
        self,
        data: StaffAppointmentCreate,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Book a slot directly from the front desk; the appointment starts confirmed.

        The slot is claimed in the hold table first so a live public hold blocks
        the booking, then the appointment insert is arbitrated by the active
        slot index.

        Raises:
            ValidationException: If the payment evidence is not accepted
            NotFoundException: If the patient, provider or service does not exist
            ConflictException: If the slot is not available
            StorageException: If the database fails
        """
        if data.payment_evidence is not None:
            validate_payment_evidence(data.payment_evidence)

        await self._ensure_patient(data.patient_id)

        now = self.clock()
        availability = AvailabilityService(self.db, self.clock)
        holds = HoldService(self.db, self.clock)

        try:
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

            claim_token = await holds.claim_slot(
                data.provider_id,
                data.service_id,
                data.appointment_date,
                data.appointment_time,
                now,
            )

            result = await self.db.execute(
                insert(appointments)
                .values(
                    patient_id=data.patient_id,
                    provider_id=data.provider_id,
                    service_id=data.service_id,
                    appointment_date=data.appointment_date,
                    appointment_time=data.appointment_time,
                    status=AppointmentStatus.CONFIRMED.value,
                    source=AppointmentSource.STAFF.value,
                    is_first_visit=data.is_first_visit,
                    notes=data.notes,
                    confirmed_by=actor.id,
                    confirmed_at=now,
                    state_changed_at=now,
                    state_changed_by=actor.id,
                    created_at=now,
                    updated_at=now,
                )
                .returning(appointments)
            )
            created = result.mappings().one()

            await self._record_transition(
                created["id"],
                previous=None,
                new=AppointmentStatus.CONFIRMED,
                actor_id=actor.id,
                reason="Staff booking",
                metadata={"source": AppointmentSource.STAFF.value},
                now=now,
            )

            if data.payment_evidence is not None:
                await attach_payment_evidence(self.db, created["id"], data.payment_evidence, now)

            await holds.drop_claim(claim_token)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(
                "staff_booking_conflict",
                provider_id=str(data.provider_id),
                slot_date=data.appointment_date.isoformat(),
                slot_time=data.appointment_time.isoformat(),
            )
            raise ConflictException(SLOT_TAKEN_MESSAGE, code="slot_unavailable") from e
        except AppException:
            await self.db.rollback()
            raise
        except DBAPIError as e:
            await self.db.rollback()
            logger.error("staff_booking_storage_failed", error=str(e))
            raise StorageException("Could not create the appointment, please try again") from e

        logger.info(
            "staff_appointment_created",
            appointment_id=str(created["id"]),
            provider_id=str(data.provider_id),
            actor_id=str(actor.id),
        )
        return AppointmentResponse.model_validate(dict(created))

    async def _record_transition(
        self,
        appointment_id: UUID,
        previous: AppointmentStatus | None,
        new: AppointmentStatus,
        actor_id: UUID | None,
        reason: str | None,
        metadata: dict[str, Any] | None,
        now: datetime,
    ) -> None:
        await self.db.execute(
            insert(appointment_state_history).values(
                appointment_id=appointment_id,
                previous_state=previous.value if previous else None,
                new_state=new.value,
                changed_by=actor_id,
                reason=reason,
                change_metadata=metadata,
                changed_at=now,
            )
        )

    async def _fetch(self, appointment_id: UUID) -> dict[str, Any]:
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Appointment not found")
        return dict(row)

    async def _ensure_patient(self, patient_id: UUID) -> None:
        result = await self.db.execute(
            select(patients.c.id).where(
                and_(patients.c.id == patient_id, patients.c.is_active.is_(True))
            )
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundException("Patient not found")

    @staticmethod
    def _ensure_can_view(row: dict[str, Any], actor: Actor) -> None:
        if not actor.is_staff and row["patient_id"] != actor.id:
            raise ForbiddenException("Access denied to this appointment")

    @staticmethod
    def _ensure_can_transition(
        row: dict[str, Any],
        target: AppointmentStatus,
        actor: Actor,
    ) -> None:
        if actor.is_staff:
            return
        # Booking owners may only cancel their own appointment
        if target != AppointmentStatus.CANCELLED or row["patient_id"] != actor.id:
            raise ForbiddenException("Only clinic staff can apply this change")
