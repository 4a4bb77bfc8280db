# backend/slotwise/domain/booking_lifecycle.py
"""
Booking lifecycle state machine.

    SCHEDULED ─┬─> COMPLETED
    CONFIRMED ─┼─> CANCELLED
               └─> NO_SHOW

SCHEDULED and CONFIRMED are initial states; the three targets are terminal.
Rescheduling changes time/worker, never status, and is not modelled here.
"""

from dataclasses import dataclass
from typing import FrozenSet, Mapping

from ..core.enums import RoleName
from ..core.exceptions import InvalidTransitionException
from ..models.booking import BookingStatus

INITIAL_STATES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.SCHEDULED, BookingStatus.CONFIRMED}
)
TERMINAL_STATES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
)

TRANSITIONS: Mapping[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.SCHEDULED: TERMINAL_STATES,
    BookingStatus.CONFIRMED: TERMINAL_STATES,
}

# Roles allowed to drive a booking into each target state.
ROLES_BY_TARGET: Mapping[BookingStatus, FrozenSet[RoleName]] = {
    BookingStatus.COMPLETED: frozenset(
        {RoleName.WORKER, RoleName.BUSINESS_OWNER, RoleName.ADMIN}
    ),
    BookingStatus.CANCELLED: frozenset(
        {RoleName.CLIENT, RoleName.WORKER, RoleName.BUSINESS_OWNER, RoleName.ADMIN}
    ),
    BookingStatus.NO_SHOW: frozenset({RoleName.BUSINESS_OWNER, RoleName.ADMIN}),
}


@dataclass(frozen=True)
class Transition:
    current: BookingStatus
    target: BookingStatus
    noop: bool = False


def is_terminal(status: BookingStatus | str) -> bool:
    return BookingStatus(status) in TERMINAL_STATES


def plan_transition(
    current: BookingStatus | str, target: BookingStatus | str, role: RoleName | str
) -> Transition:
    """
    Validate a status change and describe it.

    Cancelling an already-cancelled booking is a successful no-op.

    Raises:
        InvalidTransitionException: If the target is unreachable from ``current``
            or ``role`` may not drive a booking into ``target``.
    """
    current_status = BookingStatus(current)
    target_status = BookingStatus(target)
    role_name = RoleName(role)

    allowed_roles = ROLES_BY_TARGET.get(target_status)
    if allowed_roles is None:
        raise InvalidTransitionException(
            current_status.value,
            target_status.value,
            message=f"{target_status.value} is not a reachable booking status",
        )
    if role_name not in allowed_roles:
        raise InvalidTransitionException(
            current_status.value,
            target_status.value,
            message=f"A {role_name.value.lower()} may not mark a booking {target_status.value}",
        )

    if current_status == target_status == BookingStatus.CANCELLED:
        return Transition(current_status, target_status, noop=True)

    if target_status not in TRANSITIONS.get(current_status, frozenset()):
        raise InvalidTransitionException(current_status.value, target_status.value)

    return Transition(current_status, target_status)
