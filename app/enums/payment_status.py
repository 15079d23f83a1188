from enum import Enum

class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


REFUNDABLE_PAYMENT_STATUSES = (
    PaymentStatus.SUCCEEDED,
    PaymentStatus.PARTIALLY_REFUNDED,
)

# Payments whose money reached us, whatever was refunded since
COLLECTED_PAYMENT_STATUSES = REFUNDABLE_PAYMENT_STATUSES + (PaymentStatus.REFUNDED,)
