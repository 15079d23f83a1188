from enum import Enum


class GatewayEventKind(str, Enum):
    PAYMENT_PROCESSING = "payment_processing"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_CANCELLED = "payment_cancelled"
    REFUND_SUCCEEDED = "refund_succeeded"
    REFUND_FAILED = "refund_failed"

    def __str__(self):
        return self.value


class GatewayEventOutcome(str, Enum):
    """What reconciliation did with a webhook delivery"""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    UNMATCHED = "unmatched"
    IGNORED = "ignored"

    def __str__(self):
        return self.value
