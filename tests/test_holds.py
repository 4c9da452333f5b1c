"""Tests for reservation holds."""

import asyncio
import re
from datetime import date, time, timedelta

import pytest
from sqlalchemy import func, select

from clinic_booking.core.exceptions import ConflictException, NotFoundException, StorageException
from clinic_booking.models import appointment_holds
from clinic_booking.schemas.availability import SlotStatus
from clinic_booking.schemas.holds import HoldCreate, HoldResponse
from clinic_booking.services.availability_service import AvailabilityService
from clinic_booking.services.hold_service import HoldService, generate_payment_reference

MONDAY = date(2030, 1, 7)


def _hold_request(provider: dict, service: dict, at: time = time(9, 0)) -> HoldCreate:
    return HoldCreate(
        provider_id=provider["id"],
        service_id=service["id"],
        appointment_date=MONDAY,
        appointment_time=at,
        contact_phone="55 1234 5678",
    )


async def _slot_status(db_session, clock, provider, service, at: time) -> SlotStatus:
    status = await AvailabilityService(db_session, clock).check_slot(
        provider["id"], service["id"], MONDAY, at
    )
    await db_session.rollback()
    return status


async def _hold_count(db_session) -> int:
    result = await db_session.execute(select(func.count()).select_from(appointment_holds))
    count = result.scalar_one()
    await db_session.rollback()
    return count


@pytest.mark.asyncio
async def test_create_hold(db_session, clock, provider, service, monday_rule):
    """A hold is issued for ten minutes and marks the slot held."""
    hold = await HoldService(db_session, clock).create_hold(_hold_request(provider, service))

    assert hold.expires_at == clock.now + timedelta(minutes=10)
    assert hold.appointment_time == time(9, 0)
    assert len(hold.token) == 64
    assert await _slot_status(db_session, clock, provider, service, time(9, 0)) == SlotStatus.HELD


@pytest.mark.asyncio
async def test_hold_stores_normalized_contact(db_session, clock, provider, service, monday_rule):
    """The contact phone is kept as ten digits."""
    hold = await HoldService(db_session, clock).create_hold(_hold_request(provider, service))

    result = await db_session.execute(
        select(appointment_holds.c.contact_reference).where(appointment_holds.c.token == hold.token)
    )
    assert result.scalar_one() == "5512345678"
    await db_session.rollback()


@pytest.mark.asyncio
async def test_hold_expires_lazily(db_session, clock, provider, service, monday_rule):
    """Once the TTL passes the slot is available again without any cleanup."""
    await HoldService(db_session, clock).create_hold(_hold_request(provider, service))

    clock.advance(minutes=9, seconds=59)
    assert await _slot_status(db_session, clock, provider, service, time(9, 0)) == SlotStatus.HELD

    clock.advance(seconds=1)
    status = await _slot_status(db_session, clock, provider, service, time(9, 0))
    assert status == SlotStatus.AVAILABLE
    assert await _hold_count(db_session) == 1


@pytest.mark.asyncio
async def test_second_hold_on_same_slot_conflicts(
    db_session, clock, provider, service, monday_rule
):
    """A live hold blocks other holds on the slot."""
    holds = HoldService(db_session, clock)
    await holds.create_hold(_hold_request(provider, service))

    with pytest.raises(ConflictException) as exc_info:
        await holds.create_hold(_hold_request(provider, service))

    assert exc_info.value.code == "slot_unavailable"
    assert await _hold_count(db_session) == 1


@pytest.mark.asyncio
async def test_other_slot_is_unaffected(db_session, clock, provider, service, monday_rule):
    """Holding 09:00 leaves 10:00 bookable."""
    holds = HoldService(db_session, clock)
    await holds.create_hold(_hold_request(provider, service))
    await holds.create_hold(_hold_request(provider, service, time(10, 0)))

    assert await _hold_count(db_session) == 2


@pytest.mark.asyncio
async def test_new_hold_replaces_expired_one(db_session, clock, provider, service, monday_rule):
    """An expired hold row gives way to the next claim on the same slot."""
    holds = HoldService(db_session, clock)
    first = await holds.create_hold(_hold_request(provider, service))

    clock.advance(minutes=11)
    second = await holds.create_hold(_hold_request(provider, service))

    assert second.token != first.token
    assert await _hold_count(db_session) == 1
    with pytest.raises(NotFoundException):
        await holds.validate_hold(first.token)
    await db_session.rollback()


@pytest.mark.asyncio
async def test_validate_live_hold(db_session, clock, provider, service, monday_rule):
    """A live hold validates and carries its slot coordinates."""
    holds = HoldService(db_session, clock)
    issued = await holds.create_hold(_hold_request(provider, service))

    row = await holds.validate_hold(issued.token)
    await db_session.rollback()

    assert row["provider_id"] == provider["id"]
    assert row["hold_date"] == MONDAY
    assert row["hold_time"] == time(9, 0)


@pytest.mark.asyncio
async def test_validate_expired_hold(db_session, clock, provider, service, monday_rule):
    """Validation fails with hold_expired at exactly the expiry instant."""
    holds = HoldService(db_session, clock)
    issued = await holds.create_hold(_hold_request(provider, service))

    clock.advance(minutes=10)
    with pytest.raises(ConflictException) as exc_info:
        await holds.validate_hold(issued.token)
    await db_session.rollback()

    assert exc_info.value.code == "hold_expired"


@pytest.mark.asyncio
async def test_validate_unknown_hold(db_session, clock):
    """Unknown tokens are reported as not found."""
    with pytest.raises(NotFoundException) as exc_info:
        await HoldService(db_session, clock).validate_hold("f" * 64)
    await db_session.rollback()

    assert exc_info.value.code == "hold_not_found"


@pytest.mark.asyncio
async def test_release_hold_is_idempotent(db_session, clock, provider, service, monday_rule):
    """Releasing frees the slot; releasing again is a no-op."""
    holds = HoldService(db_session, clock)
    issued = await holds.create_hold(_hold_request(provider, service))

    assert await holds.release_hold(issued.token) is True
    assert await holds.release_hold(issued.token) is False
    status = await _slot_status(db_session, clock, provider, service, time(9, 0))
    assert status == SlotStatus.AVAILABLE


@pytest.mark.asyncio
async def test_purge_expired_holds(db_session, clock, provider, service, monday_rule):
    """Purging only removes holds whose expiry has passed."""
    holds = HoldService(db_session, clock)
    await holds.create_hold(_hold_request(provider, service))
    clock.advance(minutes=5)
    await holds.create_hold(_hold_request(provider, service, time(10, 0)))

    clock.advance(minutes=5)
    assert await holds.purge_expired_holds() == 1
    assert await _hold_count(db_session) == 1


@pytest.mark.asyncio
async def test_hold_on_time_not_offered(db_session, clock, provider, service, monday_rule):
    """Times outside the schedule cannot be held."""
    with pytest.raises(ConflictException) as exc_info:
        await HoldService(db_session, clock).create_hold(
            _hold_request(provider, service, time(9, 30))
        )

    assert exc_info.value.code == "slot_unavailable"
    assert await _hold_count(db_session) == 0


@pytest.mark.asyncio
async def test_hold_on_past_slot(db_session, clock, provider, service, monday_rule):
    """Slots that already started cannot be held."""
    clock.now = clock.now.replace(year=2030, month=1, day=7, hour=9, minute=30)

    with pytest.raises(ConflictException) as exc_info:
        await HoldService(db_session, clock).create_hold(_hold_request(provider, service))

    assert "past" in exc_info.value.message


@pytest.mark.asyncio
async def test_concurrent_holds_single_winner(
    session_factory, clock, provider, service, monday_rule
):
    """Two simultaneous requests for one slot produce exactly one hold."""

    async def attempt():
        async with session_factory() as session:
            return await HoldService(session, clock).create_hold(_hold_request(provider, service))

    results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    winners = [r for r in results if isinstance(r, HoldResponse)]
    losers = [r for r in results if isinstance(r, ConflictException)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert losers[0].code == "slot_unavailable"

    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(appointment_holds))
        assert result.scalar_one() == 1


@pytest.mark.asyncio
async def test_hold_redraws_reference_held_by_another_hold(
    db_session, clock, provider, service, monday_rule, monkeypatch
):
    """A reference already issued to a live hold is not issued twice."""
    draws = iter(["CLINIC-ABCDEF", "CLINIC-ABCDEF", "CLINIC-FEDCBA"])
    monkeypatch.setattr(
        "clinic_booking.services.hold_service.generate_payment_reference", lambda: next(draws)
    )
    holds = HoldService(db_session, clock)

    first = await holds.create_hold(_hold_request(provider, service))
    second = await holds.create_hold(_hold_request(provider, service, time(10, 0)))

    assert first.payment_reference == "CLINIC-ABCDEF"
    assert second.payment_reference == "CLINIC-FEDCBA"


@pytest.mark.asyncio
async def test_hold_gives_up_after_repeated_reference_collisions(
    db_session, clock, provider, service, monday_rule, monkeypatch
):
    """Draws are bounded; exhausting them fails the hold without writing it."""
    monkeypatch.setattr(
        "clinic_booking.services.hold_service.generate_payment_reference",
        lambda: "CLINIC-ABCDEF",
    )
    holds = HoldService(db_session, clock)
    await holds.create_hold(_hold_request(provider, service))

    with pytest.raises(StorageException):
        await holds.create_hold(_hold_request(provider, service, time(10, 0)))

    assert await _hold_count(db_session) == 1

def test_payment_reference_format():
    """References are the prefix plus six uppercase hex digits."""
    reference = generate_payment_reference()
    assert re.fullmatch(r"CLINIC-[0-9A-F]{6}", reference)
