"""Public availability endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_booking.dependencies import CacheManagerDep, ClinicClock, DatabaseSession
from clinic_booking.schemas.availability import AvailabilityResponse, BlockedDateEntry
from clinic_booking.services.availability_service import AvailabilityService
from clinic_booking.services.blocked_date_service import BlockedDateService

router = APIRouter()


@router.get(
    "/available-slots",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    summary="Classified slots of a service on a date",
)
async def get_available_slots(
    db: DatabaseSession,
    clock: ClinicClock,
    service_id: UUID = Query(..., alias="serviceId"),
    target_date: date = Query(..., alias="date"),
) -> AvailabilityResponse:
    """
    Get every slot of a service on a date.

    `slots` holds the bookable ones; `all_slots` holds every generated slot
    with its classification (available, booked, held or past) for staff views.
    A closed day is not an error: it returns no slots and a reason.
    """
    service = AvailabilityService(db, clock)
    return await service.get_availability(service_id, target_date)


@router.get(
    "/blocked-dates",
    response_model=list[BlockedDateEntry],
    status_code=status.HTTP_200_OK,
    summary="Active blocked dates",
)
async def list_blocked_dates(
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> list[BlockedDateEntry]:
    """List active blocked dates so the booking calendar can grey them out."""
    service = BlockedDateService(db, cache_manager)
    return await service.list_active()
