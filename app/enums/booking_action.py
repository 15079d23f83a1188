from enum import Enum


class BookingAction(str, Enum):
    """Guarded operations of the booking engine, see services/capabilities.py"""

    CREATE = "create"
    VIEW = "view"
    MODIFY = "modify"
    CANCEL = "cancel"
    CONFIRM = "confirm"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    NO_SHOW = "no_show"
    INITIATE_PAYMENT = "initiate_payment"
    REFUND = "refund"
    MANAGE_ROOMS = "manage_rooms"
    VIEW_REPORTS = "view_reports"

    def __str__(self):
        return self.value
