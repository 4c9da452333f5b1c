"""Public booking flow endpoints: holds and booking completion."""

from fastapi import APIRouter, Depends, status

from clinic_booking.dependencies import ClinicClock, DatabaseSession, limit_public_booking
from clinic_booking.schemas.bookings import BookingComplete, BookingResponse
from clinic_booking.schemas.holds import HoldCreate, HoldResponse
from clinic_booking.services.booking_service import BookingService
from clinic_booking.services.hold_service import HoldService

router = APIRouter()


@router.post(
    "/holds",
    response_model=HoldResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_public_booking)],
    summary="Hold a slot",
)
async def create_hold(
    data: HoldCreate,
    db: DatabaseSession,
    clock: ClinicClock,
) -> HoldResponse:
    """
    Provisionally claim a slot while the client uploads payment evidence.

    The hold lapses after a fixed TTL and is never renewed; request a new one
    to keep going.
    """
    service = HoldService(db, clock)
    return await service.create_hold(data)


@router.delete(
    "/holds/{token}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Release a hold",
)
async def release_hold(
    token: str,
    db: DatabaseSession,
    clock: ClinicClock,
) -> None:
    """Release a hold the client abandoned. Unknown tokens are ignored."""
    service = HoldService(db, clock)
    await service.release_hold(token)


@router.post(
    "/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Complete a booking",
)
async def complete_booking(
    data: BookingComplete,
    db: DatabaseSession,
    clock: ClinicClock,
) -> BookingResponse:
    """
    Turn a live hold plus payment evidence into a pending appointment.

    Returns 409 with code `slot_unavailable` or `hold_expired` when the client
    has to pick a slot again.
    """
    service = BookingService(db, clock)
    return await service.complete_booking(data)
