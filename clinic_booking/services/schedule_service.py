"""Schedule rule management for clinic staff."""

from uuid import UUID

import structlog
from sqlalchemy import and_, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.core.clock import Clock, clinic_now
from clinic_booking.core.exceptions import NotFoundException
from clinic_booking.models.directory import providers, services
from clinic_booking.models.schedules import schedule_rules
from clinic_booking.schemas.schedules import ScheduleRuleCreate, ScheduleRuleResponse

logger = structlog.get_logger()


class ScheduleService:
    """Service for recurring weekly schedule rules."""

    def __init__(self, db: AsyncSession, clock: Clock = clinic_now):
        """Initialize service with database session and clock."""
        self.db = db
        self.clock = clock

    async def create_rule(self, data: ScheduleRuleCreate) -> ScheduleRuleResponse:
        """
        Create a schedule rule.

        Args:
            data: Rule definition

        Returns:
            Created rule

        Raises:
            NotFoundException: If the provider or service does not exist
        """
        await self._ensure_exists(providers, data.provider_id, "Provider not found")
        if data.service_id is not None:
            await self._ensure_exists(services, data.service_id, "Service not found")

        now = self.clock()
        stmt = (
            insert(schedule_rules)
            .values(
                provider_id=data.provider_id,
                service_id=data.service_id,
                day_of_week=data.day_of_week,
                start_time=data.start_time,
                end_time=data.end_time,
                slot_duration_minutes=data.slot_duration_minutes,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            .returning(schedule_rules)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().one()
        await self.db.commit()

        logger.info(
            "schedule_rule_created",
            rule_id=str(row["id"]),
            provider_id=str(data.provider_id),
            day_of_week=data.day_of_week,
        )
        return ScheduleRuleResponse.model_validate(dict(row))

    async def list_rules(
        self,
        provider_id: UUID | None = None,
        include_inactive: bool = False,
    ) -> list[ScheduleRuleResponse]:
        """List rules, optionally for one provider, ordered by weekday and start time."""
        conditions = []
        if provider_id is not None:
            conditions.append(schedule_rules.c.provider_id == provider_id)
        if not include_inactive:
            conditions.append(schedule_rules.c.is_active.is_(True))

        stmt = (
            select(schedule_rules)
            .where(*conditions)
            .order_by(
                schedule_rules.c.provider_id,
                schedule_rules.c.day_of_week,
                schedule_rules.c.start_time,
            )
        )
        result = await self.db.execute(stmt)
        return [ScheduleRuleResponse.model_validate(dict(row)) for row in result.mappings().all()]

    async def deactivate_rule(self, rule_id: UUID) -> ScheduleRuleResponse:
        """
        Stop generating slots from a rule.

        Existing appointments keep their concrete date and time.

        Raises:
            NotFoundException: If the rule does not exist
        """
        stmt = (
            update(schedule_rules)
            .where(schedule_rules.c.id == rule_id)
            .values(is_active=False, updated_at=self.clock())
            .returning(schedule_rules)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if row is None:
            await self.db.rollback()
            raise NotFoundException("Schedule rule not found")

        await self.db.commit()
        logger.info("schedule_rule_deactivated", rule_id=str(rule_id))
        return ScheduleRuleResponse.model_validate(dict(row))

    async def _ensure_exists(self, table, record_id: UUID, message: str) -> None:
        result = await self.db.execute(
            select(table.c.id).where(and_(table.c.id == record_id, table.c.is_active.is_(True)))
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundException(message)
