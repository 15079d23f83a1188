from enum import Enum


class BookingPaymentStatus(str, Enum):
    """Payment summary of a booking, always derived from paid/total/refunded"""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"

    def __str__(self):
        return self.value
