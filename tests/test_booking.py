"""Tests for the booking transaction."""

import asyncio
from datetime import date, datetime, time

import pytest
from sqlalchemy import func, insert, select

from clinic_booking.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from clinic_booking.models import (
    appointment_holds,
    appointment_state_history,
    appointments,
    patients,
    payment_proofs,
)
from clinic_booking.schemas.availability import SlotStatus
from clinic_booking.schemas.bookings import BookingComplete, BookingResponse
from clinic_booking.schemas.holds import HoldCreate
from clinic_booking.services.availability_service import AvailabilityService
from clinic_booking.services.booking_service import BookingService
from clinic_booking.services.hold_service import HoldService

MONDAY = date(2030, 1, 7)


async def _hold(db_session, clock, provider, service, at: time = time(9, 0)) -> str:
    hold = await HoldService(db_session, clock).create_hold(
        HoldCreate(
            provider_id=provider["id"],
            service_id=service["id"],
            appointment_date=MONDAY,
            appointment_time=at,
        )
    )
    return hold.token


async def _count(db_session, table) -> int:
    result = await db_session.execute(select(func.count()).select_from(table))
    count = result.scalar_one()
    await db_session.rollback()
    return count


@pytest.mark.asyncio
async def test_booking_end_to_end(
    db_session, clock, provider, service, monday_rule, booking_payload
):
    """Hold then book 09:00 on Monday; 09:00 is booked and 10:00 stays open."""
    token = await _hold(db_session, clock, provider, service)

    booking = await BookingService(db_session, clock).complete_booking(
        BookingComplete.model_validate(booking_payload(token))
    )

    assert booking.status == "pending"
    assert booking.payment_reference.startswith("CLINIC-")

    availability = await AvailabilityService(db_session, clock).get_availability(
        service["id"], MONDAY
    )
    statuses = {slot.slot_time: slot.status for slot in availability.all_slots}
    assert statuses[time(9, 0)] == SlotStatus.BOOKED
    assert statuses[time(10, 0)] == SlotStatus.AVAILABLE

    result = await db_session.execute(select(appointments))
    rows = result.mappings().all()
    assert len(rows) == 1
    assert rows[0]["status"] == "pending"
    assert rows[0]["source"] == "public_booking"
    assert rows[0]["appointment_time"] == time(9, 0)
    assert rows[0]["payment_reference"] == booking.payment_reference

    result = await db_session.execute(select(appointment_state_history))
    history = result.mappings().all()
    assert len(history) == 1
    assert history[0]["previous_state"] is None
    assert history[0]["new_state"] == "pending"
    assert history[0]["changed_by"] is None
    assert history[0]["change_metadata"]["hold_token_suffix"] == token[-6:]
    await db_session.rollback()


@pytest.mark.asyncio
async def test_booking_consumes_hold_and_stores_proof(
    db_session, clock, provider, service, monday_rule, booking_payload
):
    """The hold is gone and the payment proof is linked after booking."""
    token = await _hold(db_session, clock, provider, service)

    booking = await BookingService(db_session, clock).complete_booking(
        BookingComplete.model_validate(booking_payload(token))
    )

    assert await _count(db_session, appointment_holds) == 0

    result = await db_session.execute(select(payment_proofs))
    proof = result.mappings().one()
    await db_session.rollback()
    assert proof["appointment_id"] == booking.appointment_id
    assert proof["mime_type"] == "image/jpeg"
    assert proof["size_bytes"] == 245_000


@pytest.mark.asyncio
async def test_booking_reuses_hold_token_fails(
    db_session, clock, provider, service, monday_rule, booking_payload
):
    """A consumed hold cannot be used a second time."""
    token = await _hold(db_session, clock, provider, service)
    bookings = BookingService(db_session, clock)
    await bookings.complete_booking(BookingComplete.model_validate(booking_payload(token)))

    with pytest.raises(NotFoundException) as exc_info:
        await bookings.complete_booking(BookingComplete.model_validate(booking_payload(token)))

    assert exc_info.value.code == "hold_not_found"
    assert await _count(db_session, appointments) == 1


@pytest.mark.asyncio
async def test_booking_with_expired_hold(
    db_session, clock, provider, service, monday_rule, booking_payload
):
    """Booking after the TTL is rejected and nothing is written."""
    token = await _hold(db_session, clock, provider, service)
    clock.advance(minutes=10, seconds=1)

    with pytest.raises(ConflictException) as exc_info:
        await BookingService(db_session, clock).complete_booking(
            BookingComplete.model_validate(booking_payload(token))
        )

    assert exc_info.value.code == "hold_expired"
    assert await _count(db_session, appointments) == 0


@pytest.mark.asyncio
async def test_booking_with_unknown_hold(db_session, clock, booking_payload):
    """Unknown hold tokens are not found."""
    with pytest.raises(NotFoundException):
        await BookingService(db_session, clock).complete_booking(
            BookingComplete.model_validate(booking_payload("0" * 64))
        )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("mime_type", "size_bytes"),
    [
        ("image/gif", 1_000),
        ("application/pdf", 0),
        ("image/png", 6 * 1024 * 1024),
    ],
)
async def test_booking_rejects_bad_evidence(
    db_session,
    clock,
    provider,
    service,
    monday_rule,
    booking_payload,
    mime_type,
    size_bytes,
):
    """Unsupported or oversized proofs abort the booking and keep the hold."""
    token = await _hold(db_session, clock, provider, service)
    payload = booking_payload(
        token,
        payment_evidence={
            "storage_ref": "uploads/payments/proof",
            "filename": "proof",
            "mime_type": mime_type,
            "size_bytes": size_bytes,
        },
    )

    with pytest.raises(ValidationException) as exc_info:
        await BookingService(db_session, clock).complete_booking(
            BookingComplete.model_validate(payload)
        )

    assert exc_info.value.code == "invalid_payment_evidence"
    assert await _count(db_session, appointments) == 0
    assert await _count(db_session, appointment_holds) == 1


@pytest.mark.asyncio
async def test_booking_reuses_existing_patient(
    db_session, clock, provider, service, patient, monday_rule, booking_payload
):
    """A patient with the same phone and name is not duplicated."""
    token = await _hold(db_session, clock, provider, service)

    booking = await BookingService(db_session, clock).complete_booking(
        BookingComplete.model_validate(booking_payload(token))
    )

    assert booking.patient_id == patient["id"]
    assert await _count(db_session, patients) == 1


@pytest.mark.asyncio
async def test_sibling_with_same_phone_gets_own_record(
    db_session, clock, provider, service, patient, monday_rule, booking_payload
):
    """Sharing a contact phone does not merge different patients."""
    token = await _hold(db_session, clock, provider, service)
    payload = booking_payload(token)
    payload["patient"]["full_name"] = "Lucia Lopez Garcia"

    booking = await BookingService(db_session, clock).complete_booking(
        BookingComplete.model_validate(payload)
    )

    assert booking.patient_id != patient["id"]
    assert await _count(db_session, patients) == 2


@pytest.mark.asyncio
async def test_proxy_booking_records_booker(
    db_session, clock, provider, service, monday_rule, booking_payload
):
    """Booking for someone else stores the booker's contact on the appointment."""
    token = await _hold(db_session, clock, provider, service)
    payload = booking_payload(
        token,
        booking_for_self=False,
        booker={
            "full_name": "Carlos Lopez Ruiz",
            "phone": "55-9876-5432",
            "email": "carlos@example.com",
            "relationship": "parent",
        },
    )
    payload["patient"]["phone"] = None

    booking = await BookingService(db_session, clock).complete_booking(
        BookingComplete.model_validate(payload)
    )

    result = await db_session.execute(
        select(appointments).where(appointments.c.id == booking.appointment_id)
    )
    row = result.mappings().one()
    result = await db_session.execute(
        select(patients.c.phone).where(patients.c.id == booking.patient_id)
    )
    patient_phone = result.scalar_one()
    await db_session.rollback()

    assert row["booked_by_name"] == "Carlos Lopez Ruiz"
    assert row["booked_by_phone"] == "5598765432"
    assert row["booked_by_relationship"] == "parent"
    assert patient_phone == "5598765432"


def test_proxy_booking_requires_booker(booking_payload):
    """Proxy bookings without booker details are rejected by the schema."""
    with pytest.raises(ValueError):
        BookingComplete.model_validate(booking_payload("a" * 64, booking_for_self=False))


def test_patient_age_uses_clinic_calendar(booking_payload, monkeypatch):
    """A newborn is valid on the clinic's date whatever the host clock says."""
    monkeypatch.setattr(
        "clinic_booking.schemas.bookings.clinic_now", lambda: datetime(2030, 1, 7, 0, 30)
    )
    payload = booking_payload("a" * 64)

    payload["patient"]["birth_date"] = "2030-01-07"
    assert BookingComplete.model_validate(payload).patient.birth_date == date(2030, 1, 7)

    payload["patient"]["birth_date"] = "2030-01-08"
    with pytest.raises(ValueError):
        BookingComplete.model_validate(payload)


@pytest.mark.asyncio
async def test_concurrent_bookings_of_one_hold(
    session_factory, db_session, clock, provider, service, monday_rule, booking_payload
):
    """Two submissions of the same hold create exactly one appointment."""
    token = await _hold(db_session, clock, provider, service)
    data = BookingComplete.model_validate(booking_payload(token))

    async def attempt():
        async with session_factory() as session:
            return await BookingService(session, clock).complete_booking(data)

    results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    assert len([r for r in results if isinstance(r, BookingResponse)]) == 1
    assert len([r for r in results if isinstance(r, NotFoundException)]) == 1
    assert await _count(db_session, appointments) == 1
    assert await _count(db_session, appointment_state_history) == 1


@pytest.mark.asyncio
async def test_unique_index_arbitrates_lost_race(
    db_session, clock, provider, service, patient, monday_rule, booking_payload, monkeypatch
):
    """When the early check is bypassed, the storage constraint still rejects the booking."""
    token = await _hold(db_session, clock, provider, service)

    async def skip_check(self, provider_id, slot_date, slot_time):
        return None

    monkeypatch.setattr(BookingService, "_ensure_slot_free", skip_check)

    # A competing appointment lands between the hold and the booking
    await db_session.execute(
        insert(appointments).values(
            patient_id=patient["id"],
            provider_id=provider["id"],
            service_id=service["id"],
            appointment_date=MONDAY,
            appointment_time=time(9, 0),
            status="confirmed",
            source="staff",
        )
    )
    await db_session.commit()

    with pytest.raises(ConflictException) as exc_info:
        await BookingService(db_session, clock).complete_booking(
            BookingComplete.model_validate(booking_payload(token))
        )

    assert exc_info.value.code == "slot_unavailable"
    assert await _count(db_session, appointments) == 1
    assert await _count(db_session, appointment_state_history) == 0
    assert await _count(db_session, appointment_holds) == 1


@pytest.mark.asyncio
async def test_payment_reference_of_booked_appointment_is_not_reissued(
    db_session, clock, provider, service, monday_rule, booking_payload, monkeypatch
):
    """A drawn reference already carried by an appointment is redrawn at hold time."""
    draws = iter(["CLINIC-ABCDEF", "CLINIC-ABCDEF", "CLINIC-123456"])
    monkeypatch.setattr(
        "clinic_booking.services.hold_service.generate_payment_reference", lambda: next(draws)
    )
    bookings = BookingService(db_session, clock)

    first = await _hold(db_session, clock, provider, service)
    booked = await bookings.complete_booking(BookingComplete.model_validate(booking_payload(first)))
    assert booked.payment_reference == "CLINIC-ABCDEF"

    second = await _hold(db_session, clock, provider, service, at=time(10, 0))
    booking = await bookings.complete_booking(
        BookingComplete.model_validate(booking_payload(second))
    )

    assert booking.payment_reference == "CLINIC-123456"
    assert await _count(db_session, appointments) == 2
