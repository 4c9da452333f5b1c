"""Availability aggregation: schedule rules, appointments and holds into classified slots."""

from collections import Counter
from datetime import date, datetime, time
from uuid import UUID

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.config import settings
from clinic_booking.core.clock import Clock, clinic_now
from clinic_booking.core.exceptions import ConflictException, NotFoundException
from clinic_booking.models.appointments import appointments
from clinic_booking.models.directory import provider_services, providers, services
from clinic_booking.models.holds import appointment_holds
from clinic_booking.models.schedules import schedule_rules
from clinic_booking.schemas.appointments import ACTIVE_STATUSES
from clinic_booking.schemas.availability import (
    AvailabilityResponse,
    DayStatus,
    SlotResponse,
    SlotStatus,
)
from clinic_booking.services.blocked_date_service import BlockedDateService
from clinic_booking.services.slot_generation import day_of_week, expand_schedule_rule

WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

ACTIVE_STATUS_VALUES = [status.value for status in ACTIVE_STATUSES]


def classify_slot(
    slot_at: datetime,
    slot_time: time,
    booked_times: set[time],
    held_times: set[time],
    now: datetime,
) -> SlotStatus:
    """Classify one slot: booked, then held, then past, else available."""
    if slot_time in booked_times:
        return SlotStatus.BOOKED
    if slot_time in held_times:
        return SlotStatus.HELD
    if slot_at < now:
        return SlotStatus.PAST
    return SlotStatus.AVAILABLE


class AvailabilityService:
    """Service computing slot availability per service and date."""

    def __init__(self, db: AsyncSession, clock: Clock = clinic_now):
        """Initialize service with database session and clock."""
        self.db = db
        self.clock = clock

    async def get_availability(self, service_id: UUID, target: date) -> AvailabilityResponse:
        """
        Classify every slot of a service on a date.

        Args:
            service_id: Service being booked
            target: Calendar date

        Returns:
            Available slots plus the full classified list for staff views

        Raises:
            NotFoundException: If the service does not exist
        """
        await self._get_service(service_id)

        closed_reason = await self._closed_reason(target)
        if closed_reason:
            return self._empty(service_id, target, DayStatus.UNAVAILABLE, closed_reason)

        rules = await self._rules_for(service_id, target)
        if not rules:
            return self._empty(
                service_id,
                target,
                DayStatus.UNAVAILABLE,
                "No schedule is available for this service on the selected day",
            )

        provider_ids = {rule["provider_id"] for rule in rules}
        now = self.clock()
        booked = await self._booked_times(provider_ids, target)
        held = await self._held_times(provider_ids, target, now)

        # Classification is per (provider, time); overlapping rules of one provider collapse
        seen: set[tuple[UUID, time]] = set()
        all_slots: list[SlotResponse] = []
        for rule in rules:
            provider_id = rule["provider_id"]
            for slot_time in expand_schedule_rule(rule, target):
                if (provider_id, slot_time) in seen:
                    continue
                seen.add((provider_id, slot_time))

                status = classify_slot(
                    datetime.combine(target, slot_time),
                    slot_time,
                    booked.get(provider_id, set()),
                    held.get(provider_id, set()),
                    now,
                )
                all_slots.append(
                    SlotResponse(
                        provider_id=provider_id,
                        provider_name=rule["provider_name"],
                        slot_date=target,
                        slot_time=slot_time,
                        display_time=slot_time.strftime("%H:%M"),
                        status=status,
                    )
                )

        all_slots.sort(key=lambda slot: (slot.slot_time, slot.provider_name or ""))
        available = [slot for slot in all_slots if slot.status == SlotStatus.AVAILABLE]
        counts = Counter(slot.status for slot in all_slots)

        return AvailabilityResponse(
            service_id=service_id,
            requested_date=target,
            day_status=DayStatus.OPEN,
            reason=None if available else "No available slots remain on the selected day",
            slots=available,
            all_slots=all_slots,
            counts={status: counts.get(status, 0) for status in SlotStatus},
        )

    async def check_slot(
        self,
        provider_id: UUID,
        service_id: UUID,
        target: date,
        slot_time: time,
    ) -> SlotStatus:
        """
        Classify a single (provider, date, time) slot against current storage.

        Raises:
            NotFoundException: If the provider or service does not exist
            ConflictException: If the date is closed or the time is not a slot of
                any active schedule rule for this provider and service
        """
        await self._get_service(service_id)
        await self._get_provider(provider_id)

        closed_reason = await self._closed_reason(target)
        if closed_reason:
            raise ConflictException(closed_reason, code="slot_unavailable")

        rules = await self._rules_for(service_id, target, provider_id=provider_id)
        offered = any(slot_time in expand_schedule_rule(rule, target) for rule in rules)
        if not offered:
            raise ConflictException(
                "The selected time is not offered by this provider for this service",
                code="slot_unavailable",
            )

        now = self.clock()
        booked = await self._booked_times({provider_id}, target)
        held = await self._held_times({provider_id}, target, now)

        return classify_slot(
            datetime.combine(target, slot_time),
            slot_time,
            booked.get(provider_id, set()),
            held.get(provider_id, set()),
            now,
        )

    async def active_appointment_id(
        self,
        provider_id: UUID,
        target: date,
        slot_time: time,
    ) -> UUID | None:
        """Get the id of the active appointment occupying a slot, if any."""
        stmt = select(appointments.c.id).where(
            and_(
                appointments.c.provider_id == provider_id,
                appointments.c.appointment_date == target,
                appointments.c.appointment_time == slot_time,
                appointments.c.status.in_(ACTIVE_STATUS_VALUES),
            )
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def _closed_reason(self, target: date) -> str | None:
        """Blocked dates and the closed weekday veto a day before any slot is generated."""
        overlay = BlockedDateService(self.db)
        if await overlay.is_blocked(target):
            reason = await overlay.get_reason(target)
            message = "The selected date is not available"
            return f"{message} ({reason})" if reason else message

        if day_of_week(target) == settings.clinic_closed_weekday:
            return f"The clinic is closed on {WEEKDAY_NAMES[settings.clinic_closed_weekday]}s"

        return None

    async def _rules_for(
        self,
        service_id: UUID,
        target: date,
        provider_id: UUID | None = None,
    ) -> list[dict]:
        """Active rules for the weekday: service-specific, or provider-wide for linked providers."""
        provider_offers_service = exists().where(
            and_(
                provider_services.c.provider_id == schedule_rules.c.provider_id,
                provider_services.c.service_id == service_id,
            )
        )

        conditions = [
            schedule_rules.c.is_active.is_(True),
            schedule_rules.c.day_of_week == day_of_week(target),
            providers.c.is_active.is_(True),
            or_(
                schedule_rules.c.service_id == service_id,
                and_(schedule_rules.c.service_id.is_(None), provider_offers_service),
            ),
        ]
        if provider_id is not None:
            conditions.append(schedule_rules.c.provider_id == provider_id)

        stmt = (
            select(schedule_rules, providers.c.full_name.label("provider_name"))
            .join(providers, providers.c.id == schedule_rules.c.provider_id)
            .where(and_(*conditions))
            .order_by(providers.c.full_name, schedule_rules.c.start_time)
        )
        result = await self.db.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def _booked_times(
        self,
        provider_ids: set[UUID],
        target: date,
    ) -> dict[UUID, set[time]]:
        stmt = select(appointments.c.provider_id, appointments.c.appointment_time).where(
            and_(
                appointments.c.provider_id.in_(list(provider_ids)),
                appointments.c.appointment_date == target,
                appointments.c.status.in_(ACTIVE_STATUS_VALUES),
            )
        )
        result = await self.db.execute(stmt)

        booked: dict[UUID, set[time]] = {}
        for provider_id, slot_time in result.all():
            booked.setdefault(provider_id, set()).add(slot_time)
        return booked

    async def _held_times(
        self,
        provider_ids: set[UUID],
        target: date,
        now: datetime,
    ) -> dict[UUID, set[time]]:
        # Expired holds are simply ignored; nobody has to delete them first
        stmt = select(appointment_holds.c.provider_id, appointment_holds.c.hold_time).where(
            and_(
                appointment_holds.c.provider_id.in_(list(provider_ids)),
                appointment_holds.c.hold_date == target,
                appointment_holds.c.expires_at > now,
            )
        )
        result = await self.db.execute(stmt)

        held: dict[UUID, set[time]] = {}
        for provider_id, slot_time in result.all():
            held.setdefault(provider_id, set()).add(slot_time)
        return held

    async def _get_service(self, service_id: UUID) -> dict:
        stmt = select(services).where(
            and_(services.c.id == service_id, services.c.is_active.is_(True))
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Service not found")
        return dict(row)

    async def _get_provider(self, provider_id: UUID) -> dict:
        stmt = select(providers).where(
            and_(providers.c.id == provider_id, providers.c.is_active.is_(True))
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Provider not found")
        return dict(row)

    @staticmethod
    def _empty(
        service_id: UUID,
        target: date,
        day_status: DayStatus,
        reason: str,
    ) -> AvailabilityResponse:
        return AvailabilityResponse(
            service_id=service_id,
            requested_date=target,
            day_status=day_status,
            reason=reason,
            slots=[],
            all_slots=[],
            counts={status: 0 for status in SlotStatus},
        )
