"""Appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_booking.dependencies import ClinicClock, CurrentActor, DatabaseSession, StaffActor
from clinic_booking.schemas.appointments import (
    AppointmentDetailResponse,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    StaffAppointmentCreate,
    StateTransitionRequest,
)
from clinic_booking.services.appointment_service import AppointmentService

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book a slot from the front desk",
)
async def create_staff_appointment(
    data: StaffAppointmentCreate,
    actor: StaffActor,
    db: DatabaseSession,
    clock: ClinicClock,
) -> AppointmentResponse:
    """
    Book a slot directly for an existing patient.

    Args:
        data: Patient, provider, service and slot
        actor: Authenticated staff member
        db: Database session
        clock: Clinic clock

    Returns:
        Created appointment, already confirmed
    """
    service = AppointmentService(db, clock)
    return await service.create_staff_appointment(data, actor)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    actor: StaffActor,
    db: DatabaseSession,
    clock: ClinicClock,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    provider_id: UUID | None = Query(None),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments with filtering.

    Args:
        actor: Authenticated staff member
        db: Database session
        clock: Clinic clock
        status_filter: Filter by status
        provider_id: Filter by provider ID
        from_date: First appointment date to include
        to_date: Last appointment date to include
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        status=status_filter,
        provider_id=provider_id,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )

    service = AppointmentService(db, clock)
    return await service.list_appointments(filters)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentDetailResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment with history",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    clock: ClinicClock,
) -> AppointmentDetailResponse:
    """
    Get an appointment and its audit trail, oldest transition first.

    Patients can only read their own appointments.
    """
    service = AppointmentService(db, clock)
    return await service.get_appointment_detail(appointment_id, actor)


@router.patch(
    "/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Change appointment status",
)
async def change_appointment_status(
    appointment_id: UUID,
    data: StateTransitionRequest,
    actor: CurrentActor,
    db: DatabaseSession,
    clock: ClinicClock,
) -> AppointmentResponse:
    """
    Move an appointment through its lifecycle.

    Illegal transitions and concurrent changes are rejected with 409
    (`illegal_transition` / `stale_state`); cancellations need a reason.
    Patients may only cancel their own appointments.
    """
    service = AppointmentService(db, clock)
    return await service.change_state(appointment_id, data, actor)


@router.patch(
    "/{appointment_id}/arrival",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark patient as arrived",
)
async def mark_arrived(
    appointment_id: UUID,
    actor: StaffActor,
    db: DatabaseSession,
    clock: ClinicClock,
) -> AppointmentResponse:
    """Record the patient's arrival for a confirmed appointment."""
    service = AppointmentService(db, clock)
    return await service.mark_arrived(appointment_id, actor)
