"""Schedule rule endpoints (staff)."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_booking.dependencies import ClinicClock, DatabaseSession, StaffActor
from clinic_booking.schemas.schedules import ScheduleRuleCreate, ScheduleRuleResponse
from clinic_booking.services.schedule_service import ScheduleService

router = APIRouter()


@router.get(
    "/",
    response_model=list[ScheduleRuleResponse],
    status_code=status.HTTP_200_OK,
    summary="List schedule rules",
)
async def list_schedule_rules(
    actor: StaffActor,
    db: DatabaseSession,
    clock: ClinicClock,
    provider_id: UUID | None = Query(None),
    include_inactive: bool = Query(False),
) -> list[ScheduleRuleResponse]:
    """List recurring weekly rules, optionally for one provider."""
    service = ScheduleService(db, clock)
    return await service.list_rules(provider_id, include_inactive)


@router.post(
    "/",
    response_model=ScheduleRuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create schedule rule",
)
async def create_schedule_rule(
    data: ScheduleRuleCreate,
    actor: StaffActor,
    db: DatabaseSession,
    clock: ClinicClock,
) -> ScheduleRuleResponse:
    """
    Create a recurring weekly rule.

    - **day_of_week**: 0=Sunday ... 6=Saturday
    - **service_id**: leave empty to cover every service the provider offers
    - **slot_duration_minutes**: a trailing window shorter than one slot is dropped
    """
    service = ScheduleService(db, clock)
    return await service.create_rule(data)


@router.delete(
    "/{rule_id}",
    response_model=ScheduleRuleResponse,
    status_code=status.HTTP_200_OK,
    summary="Deactivate schedule rule",
)
async def deactivate_schedule_rule(
    rule_id: UUID,
    actor: StaffActor,
    db: DatabaseSession,
    clock: ClinicClock,
) -> ScheduleRuleResponse:
    """Stop offering slots from a rule. Booked appointments are unaffected."""
    service = ScheduleService(db, clock)
    return await service.deactivate_rule(rule_id)
