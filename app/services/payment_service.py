"""
Payment attempts and refund requests.

The local Payment row is always written before the gateway is called, and
no gateway call happens while a room lock or a row lock is held.
"""

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from sqlalchemy.orm import Session
from typing import Callable, List, NamedTuple, Optional, TypeVar
from datetime import date, datetime, timedelta

from config import DEFAULT_CURRENCY, GATEWAY_TIMEOUT_SECONDS, SUPPORTED_CURRENCIES
from database.models.booking_model import Booking
from database.models.payment_model import Payment, PaymentRefund
from enums.booking_action import BookingAction
from enums.booking_status import BookingStatus
from enums.payment_status import COLLECTED_PAYMENT_STATUSES, PaymentStatus, REFUNDABLE_PAYMENT_STATUSES
from enums.refund_status import RefundStatus
from enums.user_role import UserRole
from errors import (
    GatewayError,
    GatewayUnreachable,
    InvalidPaymentAmount,
    InvalidRefundState,
    InvalidTransition,
    NotFound,
    RefundExceedsBalance,
)
from schemas.actor_schema import Actor
from schemas.payment_schema import PaymentIntentCreate, RefundCreate
from schemas.report_schema import DailyRevenue, PaymentAnalytics, PaymentStatusSummary
from services.base_service import BaseService, end_snapshot, unit_of_work
from services.capabilities import require
from services.notification_service import (
    REFUND_REQUESTED,
    NotificationSink,
    get_notification_sink,
    payment_event,
    publish,
)
from services.reconciliation_service import ReconciliationService, derive_payment_status
from utils.clock import report_period, to_utc_naive
from utils.logger import get_logger
from utils.money import ZERO, to_money

logger = get_logger("payment_service")

T = TypeVar("T")

PAYABLE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN)
OPEN_ATTEMPT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)

_gateway_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="gateway")


class PaymentIntentResult(NamedTuple):
    payment: Payment
    gateway_reference: str
    client_secret: Optional[str]


class PaymentService(BaseService):
    entity_name = "Payment"

    def __init__(
        self,
        gateway,
        notifier: Optional[NotificationSink] = None,
        reconciliation: Optional[ReconciliationService] = None,
        gateway_timeout: float = GATEWAY_TIMEOUT_SECONDS,
        supported_currencies: Optional[List[str]] = None,
    ):
        super().__init__(Payment)
        self.gateway = gateway
        self.notifier = notifier or get_notification_sink()
        self.reconciliation = reconciliation or ReconciliationService(notifier=self.notifier)
        self.gateway_timeout = gateway_timeout
        self.supported_currencies = supported_currencies or SUPPORTED_CURRENCIES or [DEFAULT_CURRENCY]

    # Queries

    def get_payment(self, db: Session, actor: Actor, payment_id: int) -> Payment:
        payment = self.get_or_raise(db, payment_id)
        require(actor, BookingAction.VIEW, owner_id=payment.user_id)
        return payment

    def list_payments_for_booking(self, db: Session, actor: Actor, booking_id: int) -> List[Payment]:
        booking = db.query(Booking).filter(Booking.id == booking_id).first()
        if booking is None:
            raise NotFound("Booking", booking_id)
        require(actor, BookingAction.VIEW, owner_id=booking.user_id)
        return self.find_where(db, Payment.booking_id == booking_id)

    def list_payments(
        self,
        db: Session,
        actor: Actor,
        status: Optional[PaymentStatus] = None,
        user_id: Optional[int] = None,
        booking_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Payment]:
        """Newest first; guests only ever see their own payments"""
        criteria = []
        if actor.role == UserRole.GUEST:
            criteria.append(Payment.user_id == actor.id)
        elif user_id is not None:
            criteria.append(Payment.user_id == user_id)
        if status is not None:
            criteria.append(Payment.status == status)
        if booking_id is not None:
            criteria.append(Payment.booking_id == booking_id)
        if start_date is not None:
            criteria.append(Payment.created_at >= to_utc_naive(start_date))
        if end_date is not None:
            criteria.append(Payment.created_at < to_utc_naive(end_date) + timedelta(days=1))
        return (
            db.query(Payment)
            .filter(*criteria)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_payment_analytics(
        self,
        db: Session,
        actor: Actor,
        now: datetime,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> PaymentAnalytics:
        """
        Payments created in the period grouped by status, and the revenue
        collected per day. The period defaults to the last 30 days.
        """
        require(actor, BookingAction.VIEW_REPORTS)
        start, end = report_period(now, start_date, end_date)
        payments = (
            db.query(Payment)
            .filter(Payment.created_at >= start, Payment.created_at < end)
            .order_by(Payment.created_at, Payment.id)
            .all()
        )

        by_status = defaultdict(list)
        by_day = defaultdict(list)
        for payment in payments:
            amount = to_money(payment.amount)
            by_status[payment.status].append(amount)
            if payment.status in COLLECTED_PAYMENT_STATUSES:
                by_day[(payment.processed_at or payment.created_at).date()].append(amount)

        summary = [
            PaymentStatusSummary(
                status=status,
                count=len(amounts),
                total_amount=to_money(sum(amounts, ZERO)),
                average_amount=to_money(sum(amounts, ZERO) / len(amounts)),
            )
            for status, amounts in sorted(by_status.items(), key=lambda item: item[0].value)
        ]
        daily_revenue = [
            DailyRevenue(day=day, revenue=to_money(sum(amounts, ZERO)), count=len(amounts))
            for day, amounts in sorted(by_day.items())
        ]
        return PaymentAnalytics(period_start=start, period_end=end, summary=summary, daily_revenue=daily_revenue)

    # Operations

    def initiate_payment(
        self, db: Session, actor: Actor, intent_in: PaymentIntentCreate, now: datetime
    ) -> PaymentIntentResult:
        """
        Start a payment attempt for a booking's outstanding balance.

        Any attempt of the same booking still open is superseded. The
        Payment row is committed as pending before the gateway is asked for
        an intent, so a webhook can never arrive for a payment we don't know.
        """
        end_snapshot(db)
        with unit_of_work(db):
            booking = (
                db.query(Booking)
                .filter(Booking.id == intent_in.booking_id)
                .populate_existing()
                .with_for_update()
                .first()
            )
            if booking is None:
                raise NotFound("Booking", intent_in.booking_id)
            require(actor, BookingAction.INITIATE_PAYMENT, owner_id=booking.user_id)

            if booking.status not in PAYABLE_BOOKING_STATUSES:
                raise InvalidTransition(
                    booking.status,
                    booking.status,
                    f"Payments are not accepted for {booking.status} bookings.",
                )

            remaining = booking.remaining_amount
            amount = to_money(intent_in.amount) if intent_in.amount is not None else remaining
            if amount <= ZERO or amount > remaining:
                raise InvalidPaymentAmount(
                    "Payment amount must be positive and cannot exceed the remaining balance.",
                    {"amount": str(amount), "remaining_amount": str(remaining)},
                )

            currency = (intent_in.currency or booking.currency).upper()
            if currency != booking.currency or currency not in self.supported_currencies:
                raise InvalidPaymentAmount(
                    f"Payments for this booking must be made in {booking.currency}.",
                    {"currency": currency, "booking_currency": booking.currency},
                )

            superseded = (
                db.query(Payment)
                .filter(Payment.booking_id == booking.id, Payment.status.in_(OPEN_ATTEMPT_STATUSES))
                .all()
            )
            for attempt in superseded:
                attempt.status = PaymentStatus.CANCELLED
                attempt.failure_message = "Superseded by a newer payment attempt"
                attempt.updated_at = now
            stale_references = [attempt.gateway_reference for attempt in superseded if attempt.gateway_reference]

            payment = Payment(
                booking_id=booking.id,
                user_id=booking.user_id,
                amount=amount,
                currency=currency,
                status=PaymentStatus.PENDING,
                description=intent_in.description or f"Booking {booking.booking_reference}",
                extra={"booking_reference": booking.booking_reference, "initiated_by": actor.id},
                platform_fee=ZERO,
                processing_fee=ZERO,
                total_fees=ZERO,
                created_at=now,
                updated_at=now,
            )
            db.add(payment)
        db.refresh(payment)
        if superseded:
            logger.info(
                "Payment attempts %s of booking %s superseded by payment %s",
                [attempt.id for attempt in superseded],
                booking.booking_reference,
                payment.id,
            )
        for reference in stale_references:
            self._cancel_stale_intent(reference)

        metadata = {
            "booking_id": booking.id,
            "booking_reference": booking.booking_reference,
            "payment_id": payment.id,
        }
        description = payment.description
        try:
            intent = self._call_gateway(
                lambda: self.gateway.create_intent(amount, currency, metadata, description)
            )
        except GatewayError as e:
            with unit_of_work(db):
                payment.status = PaymentStatus.FAILED
                payment.failure_code = e.code
                payment.failure_message = e.message
                payment.failed_at = now
            logger.warning("Payment intent for payment %s failed: %s", payment.id, e.message)
            raise

        with unit_of_work(db):
            payment.gateway_reference = intent.reference
        db.refresh(payment)

        logger.info(
            "Payment %s of %s %s started for booking %s (%s)",
            payment.id,
            amount,
            currency,
            booking.booking_reference,
            intent.reference,
        )
        return PaymentIntentResult(payment=payment, gateway_reference=intent.reference, client_secret=intent.client_secret)

    def request_refund(
        self, db: Session, actor: Actor, payment_id: int, refund_in: RefundCreate, now: datetime
    ) -> PaymentRefund:
        """
        Refund part or all of a settled payment.

        The refund row is committed as pending before the gateway call; on a
        gateway timeout it stays pending and the refund webhook settles it.

        Args:
            db: Database session
            actor: Staff member asking for the refund
            payment_id: Payment to refund
            refund_in: Amount (defaults to everything refundable) and reason
            now: Time of the request

        Returns:
            The refund record, settled if the gateway answered with a final status
        """
        require(actor, BookingAction.REFUND)

        end_snapshot(db)
        with unit_of_work(db):
            payment = self.get_for_update(db, payment_id)
            if payment.status not in REFUNDABLE_PAYMENT_STATUSES:
                raise InvalidRefundState(
                    f"A {payment.status.value} payment cannot be refunded.",
                    {"payment_id": payment.id, "payment_status": payment.status.value},
                )

            refundable = to_money(payment.amount) - payment.committed_refunds
            amount = to_money(refund_in.amount) if refund_in.amount is not None else refundable
            if amount <= ZERO:
                raise RefundExceedsBalance(
                    "Nothing left to refund on this payment.",
                    {"payment_id": payment.id, "refundable_amount": str(refundable)},
                )
            if amount > refundable:
                raise RefundExceedsBalance(
                    f"Refund of {amount} exceeds the refundable amount of {refundable}.",
                    {
                        "payment_id": payment.id,
                        "requested_amount": str(amount),
                        "refundable_amount": str(refundable),
                    },
                )

            refund = PaymentRefund(
                payment_id=payment.id,
                amount=amount,
                reason=refund_in.reason,
                status=RefundStatus.PENDING,
                processed_by=actor.id,
                created_at=now,
            )
            payment.refunds.append(refund)
            payment.status = derive_payment_status(payment)
            payment.updated_at = now
        db.refresh(refund)

        logger.info("Refund %s of %s requested on payment %s by user %s", refund.id, amount, payment.id, actor.id)
        publish(self.notifier, payment_event(REFUND_REQUESTED, payment, now, amount=amount))

        gateway_reference = payment.gateway_reference
        metadata = {"refund_id": refund.id, "payment_id": payment.id}
        try:
            result = self._call_gateway(
                lambda: self.gateway.create_refund(gateway_reference, amount, refund_in.reason, metadata)
            )
        except GatewayUnreachable:
            logger.warning("Gateway unreachable for refund %s, left pending for the webhook", refund.id)
            raise
        except GatewayError as e:
            logger.warning("Gateway rejected refund %s: %s", refund.id, e.message)
            self._settle(db, refund, False, now, e.message)
            raise

        with unit_of_work(db):
            refund.gateway_refund_id = result.reference
        if result.status in ("succeeded", "failed"):
            self._settle(db, refund, result.status == "succeeded", now)
        db.refresh(refund)
        return refund

    # Helpers

    def _cancel_stale_intent(self, gateway_reference: str) -> None:
        """
        Close a superseded intent at the gateway so its client secret can no
        longer be paid. If that fails, a late success is still credited.
        """
        try:
            self._call_gateway(lambda: self.gateway.cancel_intent(gateway_reference))
        except GatewayError as e:
            logger.warning("Could not cancel superseded intent %s: %s", gateway_reference, e.message)

    def _settle(
        self,
        db: Session,
        refund: PaymentRefund,
        succeeded: bool,
        now: datetime,
        failure_message: Optional[str] = None,
    ) -> None:
        with unit_of_work(db):
            refund = (
                db.query(PaymentRefund)
                .filter(PaymentRefund.id == refund.id)
                .populate_existing()
                .with_for_update()
                .one()
            )
            if refund.status != RefundStatus.PENDING:
                # a webhook got there first
                return
            emitted = self.reconciliation.settle_refund(db, refund, succeeded, now, failure_message)
        for event in emitted:
            publish(self.notifier, event)

    def _call_gateway(self, call: Callable[[], T]) -> T:
        future = _gateway_executor.submit(call)
        try:
            return future.result(timeout=self.gateway_timeout)
        except FuturesTimeout as e:
            future.cancel()
            raise GatewayUnreachable(
                "Payment gateway did not answer in time.",
                {"timeout_seconds": self.gateway_timeout},
            ) from e
