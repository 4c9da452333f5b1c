"""Blocked date management endpoints (staff)."""

from uuid import UUID

from fastapi import APIRouter, status

from clinic_booking.dependencies import CacheManagerDep, DatabaseSession, StaffActor
from clinic_booking.schemas.blocked_dates import BlockedDateCreate, BlockedDateResponse
from clinic_booking.services.blocked_date_service import BlockedDateService

router = APIRouter()


@router.get(
    "/",
    response_model=list[BlockedDateResponse],
    status_code=status.HTTP_200_OK,
    summary="List blocked dates",
)
async def list_blocked_dates(
    actor: StaffActor,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> list[BlockedDateResponse]:
    """List every blocked date, including inactive ones."""
    service = BlockedDateService(db, cache_manager)
    return await service.list_all()


@router.post(
    "/",
    response_model=BlockedDateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Block a date",
)
async def create_blocked_date(
    data: BlockedDateCreate,
    actor: StaffActor,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> BlockedDateResponse:
    """
    Block a calendar date for the whole clinic.

    Returns 409 if the date is already blocked.
    """
    service = BlockedDateService(db, cache_manager)
    return await service.create(data)


@router.delete(
    "/{blocked_date_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unblock a date",
)
async def delete_blocked_date(
    blocked_date_id: UUID,
    actor: StaffActor,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> None:
    """Remove a blocked date."""
    service = BlockedDateService(db, cache_manager)
    await service.delete(blocked_date_id)
