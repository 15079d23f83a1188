"""
Applies gateway webhook events to payments and bookings.

Delivery is at-least-once and unordered, so every event goes through one
idempotent entry point:

- an event id seen before is a duplicate and changes nothing,
- a payment is credited to its booking at most once, guarded by the
  payment's own status and by the unique (type, reference) ledger row,
- events for unknown payments are recorded as unmatched and acknowledged.
"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
from datetime import datetime

from config import PLATFORM_FEE_PERCENT, PLATFORM_FIXED_FEE, PROCESSING_FEE_PERCENT
from database.models.booking_model import Booking
from database.models.gateway_event_model import GatewayEvent as GatewayEventRecord
from database.models.payment_model import Payment, PaymentRefund
from database.models.transaction_model import BookingTransaction
from enums.booking_status import BookingStatus
from enums.gateway_event_kind import GatewayEventKind, GatewayEventOutcome
from enums.payment_status import PaymentStatus
from enums.refund_status import RefundStatus
from enums.transaction_type import TransactionType
from errors import DuplicateReference
from schemas.domain_event_schema import DomainEvent
from services.booking_service import sync_payment_summary
from services.notification_service import (
    BOOKING_CONFIRMED,
    PAYMENT_FAILED,
    PAYMENT_SUCCEEDED,
    REFUND_SETTLED,
    NotificationSink,
    booking_event,
    get_notification_sink,
    payment_event,
    publish,
)
from utils.id_generator import generate_receipt_number
from utils.logger import get_logger
from utils.money import ZERO, clamp_non_negative, percent_of, to_money

logger = get_logger("reconciliation")

CANCELLED_PAYMENT_MESSAGE = "Payment was cancelled"
OPEN_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)
SETTLED_PAYMENT_STATUSES = (
    PaymentStatus.SUCCEEDED,
    PaymentStatus.PARTIALLY_REFUNDED,
    PaymentStatus.REFUNDED,
)
RECEIPT_ATTEMPTS = 5

Outcome = Tuple[GatewayEventOutcome, Optional[str]]


def derive_payment_status(payment: Payment) -> PaymentStatus:
    """Status of a settled payment from its refunds still standing"""
    refunded = payment.committed_refunds
    if refunded >= to_money(payment.amount):
        return PaymentStatus.REFUNDED
    if refunded > ZERO:
        return PaymentStatus.PARTIALLY_REFUNDED
    return PaymentStatus.SUCCEEDED


class ReconciliationService:
    def __init__(
        self,
        notifier: Optional[NotificationSink] = None,
        platform_fee_percent=PLATFORM_FEE_PERCENT,
        platform_fixed_fee=PLATFORM_FIXED_FEE,
        processing_fee_percent=PROCESSING_FEE_PERCENT,
    ):
        self.notifier = notifier or get_notification_sink()
        self.platform_fee_percent = platform_fee_percent
        self.platform_fixed_fee = to_money(platform_fixed_fee)
        self.processing_fee_percent = processing_fee_percent
        self._handlers = {
            GatewayEventKind.PAYMENT_PROCESSING: self._apply_processing,
            GatewayEventKind.PAYMENT_SUCCEEDED: self._apply_succeeded,
            GatewayEventKind.PAYMENT_FAILED: self._apply_failed,
            GatewayEventKind.PAYMENT_CANCELLED: self._apply_failed,
            GatewayEventKind.REFUND_SUCCEEDED: self._apply_refund,
            GatewayEventKind.REFUND_FAILED: self._apply_refund,
        }

    def apply_gateway_event(self, db: Session, event, now: datetime) -> GatewayEventOutcome:
        """
        Apply one gateway event, safe to call any number of times per event.

        Never raises for unmatched or already applied events: the webhook
        must acknowledge those to the gateway.

        Args:
            db: Database session
            event: One of the gateway event union variants
            now: Time the event is processed

        Returns:
            What happened to the event
        """
        if self._already_recorded(db, event.event_id):
            logger.info("Gateway event %s already processed, skipping", event.event_id)
            return GatewayEventOutcome.DUPLICATE

        emitted: List[DomainEvent] = []
        try:
            outcome, detail = self._handlers[event.kind](db, event, now, emitted)
            db.add(
                GatewayEventRecord(
                    event_id=event.event_id,
                    kind=event.kind,
                    gateway_reference=event.gateway_reference,
                    outcome=outcome,
                    detail=detail,
                    received_at=now,
                )
            )
            db.commit()
        except IntegrityError:
            # a concurrent delivery of the same event (or payment) won the race
            db.rollback()
            logger.info("Gateway event %s lost a race with a duplicate delivery", event.event_id)
            return GatewayEventOutcome.DUPLICATE
        except Exception:
            db.rollback()
            raise

        log = logger.warning if outcome == GatewayEventOutcome.UNMATCHED else logger.info
        log(
            "Gateway event %s (%s) for %s: %s%s",
            event.event_id,
            event.kind,
            event.gateway_reference,
            outcome,
            f" ({detail})" if detail else "",
        )
        for domain_event in emitted:
            publish(self.notifier, domain_event)
        return outcome

    def settle_refund(
        self,
        db: Session,
        refund: PaymentRefund,
        succeeded: bool,
        now: datetime,
        failure_message: Optional[str] = None,
    ) -> List[DomainEvent]:
        """
        Move a pending refund to its terminal state inside the caller's transaction

        Returns:
            Domain events to publish once the caller has committed
        """
        payment = refund.payment
        booking = self._lock_booking(db, payment.booking_id)

        refund.settled_at = now
        if succeeded:
            refund.status = RefundStatus.SUCCEEDED
            booking.refunded_amount = to_money(booking.refunded_amount) + to_money(refund.amount)
            db.add(
                BookingTransaction(
                    booking_id=booking.id,
                    amount=to_money(refund.amount),
                    type=TransactionType.REFUND,
                    method="card",
                    reference=refund.gateway_refund_id or f"refund-{refund.id}",
                    status="completed",
                    processed_at=now,
                )
            )
            if booking.status == BookingStatus.CANCELLED and booking.refund_amount is not None:
                booking.refund_processed = to_money(booking.refunded_amount) >= to_money(booking.refund_amount)
        else:
            refund.status = RefundStatus.FAILED
            refund.failure_message = failure_message

        payment.status = derive_payment_status(payment)
        sync_payment_summary(booking)
        booking.updated_at = now

        status = "succeeded" if succeeded else "failed"
        return [payment_event(REFUND_SETTLED, payment, now, amount=refund.amount, status=status)]

    # Handlers, each runs inside apply_gateway_event's transaction

    def _apply_processing(self, db: Session, event, now: datetime, emitted: List[DomainEvent]) -> Outcome:
        payment = self._find_payment(db, event.gateway_reference)
        if payment is None:
            return GatewayEventOutcome.UNMATCHED, "no payment with this gateway reference"
        if payment.status != PaymentStatus.PENDING:
            return GatewayEventOutcome.IGNORED, f"payment already {payment.status.value}"
        payment.status = PaymentStatus.PROCESSING
        return GatewayEventOutcome.APPLIED, None

    def _apply_succeeded(self, db: Session, event, now: datetime, emitted: List[DomainEvent]) -> Outcome:
        payment = self._find_payment(db, event.gateway_reference)
        if payment is None:
            return GatewayEventOutcome.UNMATCHED, "no payment with this gateway reference"
        if payment.status in SETTLED_PAYMENT_STATUSES or self._already_credited(db, event.gateway_reference):
            return GatewayEventOutcome.DUPLICATE, "payment already credited"

        amount = to_money(payment.amount)
        if event.amount is not None and to_money(event.amount) != amount:
            logger.warning(
                "Gateway reported %s for payment %s recorded at %s, crediting the recorded amount",
                event.amount,
                payment.id,
                amount,
            )

        # late success of a failed or superseded attempt still moved money
        payment.status = PaymentStatus.SUCCEEDED
        payment.processed_at = now
        payment.failure_code = None
        payment.failure_message = None
        payment.decline_code = None
        payment.platform_fee = to_money(percent_of(amount, self.platform_fee_percent) + self.platform_fixed_fee)
        payment.processing_fee = percent_of(amount, self.processing_fee_percent)
        payment.total_fees = to_money(payment.platform_fee + payment.processing_fee)
        payment.receipt_number = self._unique_receipt_number(db, now)

        booking = self._lock_booking(db, payment.booking_id)
        booking.paid_amount = to_money(booking.paid_amount) + amount
        db.add(
            BookingTransaction(
                booking_id=booking.id,
                amount=amount,
                type=TransactionType.PAYMENT,
                method="card",
                reference=event.gateway_reference,
                status="completed",
                processed_at=now,
            )
        )
        confirmed = sync_payment_summary(booking)
        if booking.status == BookingStatus.CANCELLED and booking.cancellation_fee is not None:
            # money arrived after the cancellation, it is owed back minus the fee
            booking.refund_amount = clamp_non_negative(to_money(booking.paid_amount) - to_money(booking.cancellation_fee))
            booking.refund_processed = to_money(booking.refunded_amount) >= booking.refund_amount
        booking.updated_at = now

        emitted.append(payment_event(PAYMENT_SUCCEEDED, payment, now, receipt=payment.receipt_number))
        if confirmed:
            emitted.append(booking_event(BOOKING_CONFIRMED, booking, now))
        return GatewayEventOutcome.APPLIED, None

    def _apply_failed(self, db: Session, event, now: datetime, emitted: List[DomainEvent]) -> Outcome:
        payment = self._find_payment(db, event.gateway_reference)
        if payment is None:
            return GatewayEventOutcome.UNMATCHED, "no payment with this gateway reference"
        if payment.status not in OPEN_PAYMENT_STATUSES:
            return GatewayEventOutcome.IGNORED, f"payment already {payment.status.value}"

        payment.status = PaymentStatus.FAILED
        payment.failed_at = now
        if event.kind == GatewayEventKind.PAYMENT_CANCELLED:
            payment.failure_code = "cancelled"
            payment.failure_message = CANCELLED_PAYMENT_MESSAGE
        else:
            payment.failure_code = event.failure_code
            payment.failure_message = event.failure_message
            payment.decline_code = event.decline_code

        emitted.append(payment_event(PAYMENT_FAILED, payment, now, reason=payment.failure_message or "unknown reason"))
        return GatewayEventOutcome.APPLIED, None

    def _apply_refund(self, db: Session, event, now: datetime, emitted: List[DomainEvent]) -> Outcome:
        refund = self._find_refund(db, event.refund_reference, event.local_refund_id)
        if refund is None:
            return GatewayEventOutcome.UNMATCHED, "no refund with this gateway reference"
        if refund.status != RefundStatus.PENDING:
            return GatewayEventOutcome.DUPLICATE, f"refund already {refund.status.value}"

        if refund.gateway_refund_id is None:
            refund.gateway_refund_id = event.refund_reference
        succeeded = event.kind == GatewayEventKind.REFUND_SUCCEEDED
        failure_message = None if succeeded else event.failure_message
        emitted.extend(self.settle_refund(db, refund, succeeded, now, failure_message))
        return GatewayEventOutcome.APPLIED, None

    # Lookups

    def _already_recorded(self, db: Session, event_id: str) -> bool:
        return (
            db.query(GatewayEventRecord.id).filter(GatewayEventRecord.event_id == event_id).first()
            is not None
        )

    def _already_credited(self, db: Session, gateway_reference: str) -> bool:
        return (
            db.query(BookingTransaction.id)
            .filter(
                BookingTransaction.type == TransactionType.PAYMENT,
                BookingTransaction.reference == gateway_reference,
            )
            .first()
            is not None
        )

    def _find_payment(self, db: Session, gateway_reference: str) -> Optional[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.gateway_reference == gateway_reference)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def _find_refund(self, db: Session, refund_reference: str, local_refund_id: Optional[int]) -> Optional[PaymentRefund]:
        refund = (
            db.query(PaymentRefund)
            .filter(PaymentRefund.gateway_refund_id == refund_reference)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if refund is None and local_refund_id is not None:
            refund = (
                db.query(PaymentRefund)
                .filter(PaymentRefund.id == local_refund_id)
                .populate_existing()
                .with_for_update()
                .first()
            )
        return refund

    def _lock_booking(self, db: Session, booking_id: int) -> Booking:
        return (
            db.query(Booking)
            .filter(Booking.id == booking_id)
            .populate_existing()
            .with_for_update()
            .one()
        )

    def _unique_receipt_number(self, db: Session, now: datetime) -> str:
        for _ in range(RECEIPT_ATTEMPTS):
            receipt = generate_receipt_number(now)
            taken = db.query(Payment.id).filter(Payment.receipt_number == receipt).first()
            if taken is None:
                return receipt
        raise DuplicateReference(
            "Could not generate a unique receipt number.",
            {"attempts": RECEIPT_ATTEMPTS},
        )
