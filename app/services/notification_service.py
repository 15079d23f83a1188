"""
Outbound notifications for committed booking and payment changes.

Services hand a DomainEvent to a sink and move on: delivery happens on a
background worker and a delivery failure never reaches the caller.
"""

import asyncio
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional, Protocol, Tuple
from datetime import datetime

from config import NOTIFICATIONS_ENABLED
from database.models.booking_model import Booking
from database.models.payment_model import Payment
from schemas.domain_event_schema import DomainEvent
from services.email_service import EmailService
from utils.logger import get_logger

logger = get_logger("notifications")

BOOKING_CREATED = "booking.created"
BOOKING_MODIFIED = "booking.modified"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_CHECKED_IN = "booking.checked_in"
BOOKING_CHECKED_OUT = "booking.checked_out"
BOOKING_NO_SHOW = "booking.no_show"
PAYMENT_SUCCEEDED = "payment.succeeded"
PAYMENT_FAILED = "payment.failed"
REFUND_REQUESTED = "refund.requested"
REFUND_SETTLED = "refund.settled"

EMAIL_TEMPLATES: Dict[str, Tuple[str, str]] = {
    BOOKING_CREATED: (
        "Booking received - {reference}",
        "Hello,\n\nWe have received your booking {reference} from {check_in} to {check_out}.\n"
        "Total due: {total} {currency}. Your booking is confirmed once the payment is completed.",
    ),
    BOOKING_MODIFIED: (
        "Booking updated - {reference}",
        "Hello,\n\nYour booking {reference} now runs from {check_in} to {check_out}.\n"
        "New total: {total} {currency}, remaining balance: {remaining} {currency}.",
    ),
    BOOKING_CONFIRMED: (
        "Booking confirmed - {reference}",
        "Hello,\n\nYour booking {reference} from {check_in} to {check_out} is confirmed. See you soon!",
    ),
    BOOKING_CANCELLED: (
        "Booking cancelled - {reference}",
        "Hello,\n\nYour booking {reference} has been cancelled.\n"
        "Cancellation fee: {fee} {currency}, refund due: {refund} {currency}.",
    ),
    BOOKING_CHECKED_IN: (
        "Welcome! - {reference}",
        "Hello,\n\nYou are checked in for booking {reference}. Enjoy your stay.",
    ),
    BOOKING_CHECKED_OUT: (
        "Thanks for staying with us - {reference}",
        "Hello,\n\nYou are checked out of booking {reference}. We hope to see you again.",
    ),
    BOOKING_NO_SHOW: (
        "Missed check-in - {reference}",
        "Hello,\n\nBooking {reference} was marked as a no-show because nobody checked in on {check_in}.",
    ),
    PAYMENT_SUCCEEDED: (
        "Payment received - {reference}",
        "Hello,\n\nWe received your payment of {amount} {currency} for booking {reference}.\n"
        "Receipt number: {receipt}.",
    ),
    PAYMENT_FAILED: (
        "Payment failed - {reference}",
        "Hello,\n\nYour payment of {amount} {currency} for booking {reference} did not go through: {reason}",
    ),
    REFUND_REQUESTED: (
        "Refund on its way - {reference}",
        "Hello,\n\nA refund of {amount} {currency} for booking {reference} has been requested.",
    ),
    REFUND_SETTLED: (
        "Refund {status} - {reference}",
        "Hello,\n\nThe refund of {amount} {currency} for booking {reference} has {status}.",
    ),
}


class NotificationSink(Protocol):
    def emit(self, event: DomainEvent) -> None:
        ...


class LoggingNotificationSink:
    """Used when email notifications are switched off"""

    def emit(self, event: DomainEvent) -> None:
        logger.info("Notification %s for booking %s", event.name, event.booking_reference)


class EmailNotificationSink:
    def __init__(self, email_service=None, executor: Optional[ThreadPoolExecutor] = None):
        self._email_service = email_service
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify")

    @property
    def email_service(self):
        if self._email_service is None:
            self._email_service = EmailService()
        return self._email_service

    def render(self, event: DomainEvent) -> Optional[Tuple[str, str]]:
        template = EMAIL_TEMPLATES.get(event.name)
        if template is None:
            return None
        values = {"reference": event.booking_reference or ""}
        values.update({key: str(value) for key, value in event.payload.items()})
        subject, body = template
        return subject.format_map(_Defaulting(values)), body.format_map(_Defaulting(values))

    def emit(self, event: DomainEvent) -> None:
        if not event.recipient:
            logger.debug("No recipient for %s, skipping email", event.name)
            return
        rendered = self.render(event)
        if rendered is None:
            return
        subject, body = rendered
        future = self._executor.submit(self._deliver, event.recipient, subject, body)
        future.add_done_callback(lambda done: self._log_failure(done, event))

    def _deliver(self, recipient: str, subject: str, body: str) -> None:
        asyncio.run(self.email_service.send_email(recipient, subject, body))

    @staticmethod
    def _log_failure(future: Future, event: DomainEvent) -> None:
        error = future.exception()
        if error is not None:
            logger.error("Failed to deliver %s email for %s: %s", event.name, event.booking_reference, error)


class _Defaulting(dict):
    def __missing__(self, key):
        return ""


def publish(sink: NotificationSink, event: DomainEvent) -> None:
    """Hand an event to the sink, a failing sink never fails the operation"""
    try:
        sink.emit(event)
    except Exception:
        logger.exception("Notification sink failed for %s", event.name)


def booking_event(name: str, booking: Booking, now: datetime, **payload) -> DomainEvent:
    data = {
        "check_in": booking.check_in_date.date().isoformat(),
        "check_out": booking.check_out_date.date().isoformat(),
        "total": booking.total_amount,
        "remaining": booking.remaining_amount,
        "currency": booking.currency,
    }
    data.update(payload)
    return DomainEvent(
        name=name,
        occurred_at=now,
        booking_id=booking.id,
        booking_reference=booking.booking_reference,
        recipient=booking.guest_email or (booking.user.email if booking.user else None),
        payload={key: str(value) for key, value in data.items()},
    )


def payment_event(name: str, payment: Payment, now: datetime, **payload) -> DomainEvent:
    booking = payment.booking
    data = {"amount": payment.amount, "currency": payment.currency}
    data.update(payload)
    return DomainEvent(
        name=name,
        occurred_at=now,
        booking_id=booking.id,
        booking_reference=booking.booking_reference,
        payment_id=payment.id,
        recipient=booking.guest_email or (booking.user.email if booking.user else None),
        payload={key: str(value) for key, value in data.items()},
    )


_default_sink: Optional[NotificationSink] = None


def get_notification_sink() -> NotificationSink:
    global _default_sink
    if _default_sink is None:
        _default_sink = EmailNotificationSink() if NOTIFICATIONS_ENABLED else LoggingNotificationSink()
    return _default_sink
