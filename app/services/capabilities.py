"""
Who may run which booking engine operation.

One table maps each guarded action to the roles allowed to perform it.
Guests additionally only ever act on their own bookings and payments.
"""

from typing import Optional

from enums.booking_action import BookingAction
from enums.user_role import UserRole
from errors import PermissionDenied
from schemas.actor_schema import Actor

ALL_ROLES = frozenset({UserRole.GUEST, UserRole.STAFF, UserRole.ADMIN})
STAFF_ROLES = frozenset({UserRole.STAFF, UserRole.ADMIN})
ADMIN_ROLES = frozenset({UserRole.ADMIN})

CAPABILITIES = {
    BookingAction.CREATE: ALL_ROLES,
    BookingAction.VIEW: ALL_ROLES,
    BookingAction.MODIFY: ALL_ROLES,
    BookingAction.CANCEL: ALL_ROLES,
    BookingAction.INITIATE_PAYMENT: ALL_ROLES,
    BookingAction.CONFIRM: STAFF_ROLES,
    BookingAction.CHECK_IN: STAFF_ROLES,
    BookingAction.CHECK_OUT: STAFF_ROLES,
    BookingAction.NO_SHOW: STAFF_ROLES,
    BookingAction.REFUND: STAFF_ROLES,
    BookingAction.VIEW_REPORTS: STAFF_ROLES,
    BookingAction.MANAGE_ROOMS: ADMIN_ROLES,
}


def can(actor: Actor, action: BookingAction, owner_id: Optional[int] = None) -> bool:
    if actor.role not in CAPABILITIES[action]:
        return False
    if owner_id is not None and actor.role == UserRole.GUEST:
        return actor.id == owner_id
    return True


def require(actor: Actor, action: BookingAction, owner_id: Optional[int] = None) -> None:
    if not can(actor, action, owner_id):
        raise PermissionDenied(
            f"Role '{actor.role}' may not {str(action).replace('_', ' ')} here.",
            {"action": str(action), "role": str(actor.role), "actor_id": actor.id},
        )
