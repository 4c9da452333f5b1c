"""Appointment lifecycle rules."""

from datetime import datetime
from typing import Any
from uuid import UUID

from clinic_booking.core.exceptions import ConflictException, ValidationException
from clinic_booking.schemas.appointments import AppointmentStatus

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.CANCELLED,
            AppointmentStatus.IN_PROGRESS,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

TERMINAL_STATES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def ensure_transition_allowed(current: AppointmentStatus, target: AppointmentStatus) -> None:
    """
    Reject a move that is not in the lifecycle table.

    Raises:
        ConflictException: With code ``illegal_transition``
    """
    if target in ALLOWED_TRANSITIONS[current]:
        return

    if current in TERMINAL_STATES:
        message = f"Appointment is {current.value} and accepts no further changes"
    else:
        allowed = ", ".join(sorted(status.value for status in ALLOWED_TRANSITIONS[current]))
        message = (
            f"Cannot change appointment from {current.value} to {target.value} "
            f"(allowed: {allowed})"
        )
    raise ConflictException(message, code="illegal_transition")


def transition_values(
    current: AppointmentStatus,
    target: AppointmentStatus,
    actor_id: UUID,
    reason: str | None,
    now: datetime,
    appointment: dict[str, Any],
) -> dict[str, Any]:
    """
    Build the column updates for a legal transition.

    Args:
        current: Status before the change
        target: Status after the change
        actor_id: Who applies the change
        reason: Free-text reason, mandatory for cancellations
        now: Clinic-local timestamp of the change
        appointment: Current appointment row

    Returns:
        Column values for the appointment UPDATE

    Raises:
        ValidationException: If a cancellation has no reason
    """
    values: dict[str, Any] = {
        "status": target.value,
        "state_changed_at": now,
        "state_changed_by": actor_id,
        "state_change_reason": reason,
        "updated_at": now,
    }

    if target == AppointmentStatus.CONFIRMED:
        values.update(confirmed_by=actor_id, confirmed_at=now)

    elif target == AppointmentStatus.CANCELLED:
        if not reason:
            raise ValidationException(
                "A cancellation reason is required", code="reason_required"
            )
        values.update(cancelled_by=actor_id, cancelled_at=now, cancellation_reason=reason)

    elif target == AppointmentStatus.IN_PROGRESS:
        values.update(entered_consultation_by=actor_id, entered_consultation_at=now)
        # Entering consultation implies arrival
        if appointment.get("arrived_at") is None:
            values.update(arrived_at=now, arrived_marked_by=actor_id)

    elif target == AppointmentStatus.COMPLETED:
        values.update(completed_by=actor_id, completed_at=now)

    return values
