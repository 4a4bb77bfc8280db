# backend/slotwise/domain/access_policy.py
"""
Role-based access policy for bookings.

The actor is always passed in explicitly; nothing here reads request or
session state.
"""

from dataclasses import dataclass
from typing import FrozenSet, Mapping, Optional, Protocol

from ..core.enums import BookingAction, RoleName
from ..core.exceptions import ForbiddenException
from ..models.booking import BookingStatus


@dataclass(frozen=True)
class Actor:
    """Who is making the request."""

    id: str
    role: RoleName

    @classmethod
    def of(cls, actor_id: str, role: RoleName | str) -> "Actor":
        return cls(id=actor_id, role=RoleName(role))


class BookingLike(Protocol):
    client_id: str
    worker_id: Optional[str]
    business_id: str


# Actions each non-admin role may take on a booking it is related to.
_ACTIONS_BY_ROLE: Mapping[RoleName, FrozenSet[BookingAction]] = {
    RoleName.BUSINESS_OWNER: frozenset(BookingAction),
    RoleName.WORKER: frozenset(
        {BookingAction.READ, BookingAction.COMPLETE, BookingAction.CANCEL}
    ),
    RoleName.CLIENT: frozenset(
        {BookingAction.READ, BookingAction.CREATE, BookingAction.CANCEL}
    ),
}

ACTION_FOR_TARGET: Mapping[BookingStatus, BookingAction] = {
    BookingStatus.COMPLETED: BookingAction.COMPLETE,
    BookingStatus.CANCELLED: BookingAction.CANCEL,
    BookingStatus.NO_SHOW: BookingAction.MARK_NO_SHOW,
}


def can_access(
    actor: Actor,
    booking: BookingLike,
    action: BookingAction,
    *,
    business_owner_id: Optional[str],
) -> bool:
    """
    Decide whether ``actor`` may perform ``action`` on ``booking``.

    ``business_owner_id`` is the owner of the booking's business, resolved
    from the business directory by the caller.
    """
    if actor.role == RoleName.ADMIN:
        return True

    if actor.role == RoleName.BUSINESS_OWNER:
        related = business_owner_id is not None and business_owner_id == actor.id
    elif actor.role == RoleName.WORKER:
        related = booking.worker_id is not None and booking.worker_id == actor.id
    elif actor.role == RoleName.CLIENT:
        related = booking.client_id == actor.id
    else:
        return False

    return related and action in _ACTIONS_BY_ROLE[actor.role]


def require_access(
    actor: Actor,
    booking: BookingLike,
    action: BookingAction,
    *,
    business_owner_id: Optional[str],
) -> None:
    """
    Raises:
        ForbiddenException: If the policy denies the action.
    """
    if not can_access(actor, booking, action, business_owner_id=business_owner_id):
        raise ForbiddenException(
            details={"action": action.value, "role": actor.role.value},
        )
