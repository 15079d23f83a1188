"""
Domain errors raised by the booking and payment services.

Every error carries a stable ``code``, a human readable ``message`` and a
``details`` dict with the structured facts (current state, requested state,
conflicting dates...) the request layer needs to build an actionable
response. ``retryable`` marks errors a caller may retry as-is.
"""

from typing import Any, Dict, Optional


class BookingEngineError(Exception):
    code = "booking_engine_error"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFound(BookingEngineError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} with ID {entity_id} not found.",
            {"entity": entity, "id": entity_id},
        )


class PermissionDenied(BookingEngineError):
    code = "permission_denied"


class InvalidDateRange(BookingEngineError):
    code = "invalid_date_range"


class RoomInactive(BookingEngineError):
    code = "room_inactive"

    def __init__(self, room_id: int, is_active: bool, status: str):
        super().__init__(
            "Room is not available for booking.",
            {"room_id": room_id, "is_active": is_active, "room_status": status},
        )


class CapacityExceeded(BookingEngineError):
    code = "capacity_exceeded"


class BookingConflict(BookingEngineError):
    code = "booking_conflict"
    retryable = True


class InvalidTransition(BookingEngineError):
    code = "invalid_transition"

    def __init__(
        self,
        current_state: str,
        requested_state: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        payload = {"current_state": str(current_state), "requested_state": str(requested_state)}
        payload.update(details or {})
        super().__init__(
            message or f"Cannot move booking from {current_state} to {requested_state}.",
            payload,
        )
        self.current_state = current_state
        self.requested_state = requested_state


class ModificationWindowClosed(InvalidTransition):
    code = "modification_window_closed"


class CheckInTooEarly(InvalidTransition):
    code = "check_in_too_early"


class InvalidRefundState(BookingEngineError):
    code = "invalid_refund_state"


class RefundExceedsBalance(BookingEngineError):
    code = "refund_exceeds_balance"


class InvalidPaymentAmount(BookingEngineError):
    code = "invalid_payment_amount"


class DuplicateReference(BookingEngineError):
    code = "duplicate_reference"
    retryable = True


class GatewayError(BookingEngineError):
    code = "gateway_error"


class GatewayUnreachable(GatewayError):
    code = "gateway_unreachable"


class RoomNumberTaken(BookingEngineError):
    code = "room_number_taken"


class RoomInUse(BookingEngineError):
    code = "room_in_use"
