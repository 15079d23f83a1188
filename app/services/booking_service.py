"""
Booking lifecycle: create, modify, cancel, confirm, check-in, check-out
and no-show.

Every time-sensitive guard takes ``now`` from the caller. Transitions that
touch room capacity run under the per-room lock with the room row locked,
in a transaction begun after the lock is taken, and re-check their guards
inside that section before committing.
"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from collections import Counter
from typing import List, NamedTuple, Optional
from datetime import date, datetime, timedelta
from decimal import Decimal

from config import (
    EARLY_CHECK_IN_DAYS,
    MAX_BOOKING_NIGHTS,
    MODIFICATION_WINDOW_HOURS,
    REFERENCE_RETRY_ATTEMPTS,
    TAX_RATE_PERCENT,
)
from database.models.booking_model import Booking
from enums.booking_action import BookingAction
from enums.booking_payment_status import BookingPaymentStatus
from enums.booking_status import BookingStatus
from enums.user_role import UserRole
from errors import (
    CheckInTooEarly,
    DuplicateReference,
    InvalidDateRange,
    InvalidTransition,
    ModificationWindowClosed,
    PermissionDenied,
)
from schemas.actor_schema import Actor
from schemas.booking_schema import BookingCreate, BookingUpdate, CheckInRequest, CheckOutRequest
from schemas.report_schema import BookingAnalytics
from services.availability_service import AvailabilityService
from services.base_service import BaseService, end_snapshot, unit_of_work
from services.cancellation_policy import cancellation_fee, fee_percentage
from services.capabilities import require
from services.notification_service import (
    BOOKING_CANCELLED,
    BOOKING_CHECKED_IN,
    BOOKING_CHECKED_OUT,
    BOOKING_CONFIRMED,
    BOOKING_CREATED,
    BOOKING_MODIFIED,
    BOOKING_NO_SHOW,
    NotificationSink,
    booking_event,
    get_notification_sink,
    publish,
)
from services.pricing_service import count_nights, price
from services.room_lock import RoomLockManager, room_locks
from services.room_service import RoomService
from utils.clock import hours_between, report_period, start_of_day, to_utc_naive
from utils.id_generator import generate_booking_reference
from utils.logger import get_logger
from utils.money import ZERO, clamp_non_negative, to_money

logger = get_logger("booking_service")

MODIFIABLE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)
CANCELLABLE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class CancellationResult(NamedTuple):
    booking: Booking
    fee_charged: Decimal
    refund_amount: Decimal


def derive_booking_payment_status(total, paid, refunded) -> BookingPaymentStatus:
    total, paid, refunded = to_money(total), to_money(paid), to_money(refunded)
    if paid <= ZERO:
        return BookingPaymentStatus.PENDING
    if refunded >= paid:
        return BookingPaymentStatus.REFUNDED
    if clamp_non_negative(total - paid) == ZERO:
        return BookingPaymentStatus.PAID
    return BookingPaymentStatus.PARTIAL


def sync_payment_summary(booking: Booking) -> bool:
    """
    Re-derive the booking's payment status from paid/total/refunded.

    A pending booking with money on it and nothing left to pay is confirmed.

    Returns:
        True when this call confirmed the booking
    """
    booking.payment_status = derive_booking_payment_status(
        booking.total_amount, booking.paid_amount, booking.refunded_amount
    )
    if (
        booking.status == BookingStatus.PENDING
        and to_money(booking.paid_amount) > ZERO
        and booking.remaining_amount == ZERO
    ):
        booking.status = BookingStatus.CONFIRMED
        return True
    return False


class BookingService(BaseService):
    entity_name = "Booking"

    def __init__(
        self,
        notifier: Optional[NotificationSink] = None,
        lock_manager: RoomLockManager = room_locks,
        tax_rate_percent=TAX_RATE_PERCENT,
        modification_window_hours: int = MODIFICATION_WINDOW_HOURS,
        early_check_in_days: int = EARLY_CHECK_IN_DAYS,
        max_nights: int = MAX_BOOKING_NIGHTS,
        reference_attempts: int = REFERENCE_RETRY_ATTEMPTS,
    ):
        super().__init__(Booking)
        self.notifier = notifier or get_notification_sink()
        self.locks = lock_manager
        self.tax_rate_percent = tax_rate_percent
        self.modification_window_hours = modification_window_hours
        self.early_check_in_days = early_check_in_days
        self.max_nights = max_nights
        self.reference_attempts = reference_attempts
        self.availability = AvailabilityService()
        self.room_service = RoomService()

    # Queries

    def get_booking(self, db: Session, actor: Actor, booking_id: int) -> Booking:
        booking = self.get_or_raise(db, booking_id)
        require(actor, BookingAction.VIEW, owner_id=booking.user_id)
        return booking

    def get_by_reference(self, db: Session, reference: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.booking_reference == reference).first()

    def list_bookings(
        self,
        db: Session,
        actor: Actor,
        status: Optional[BookingStatus] = None,
        room_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Booking]:
        """Guests only ever see their own bookings"""
        criteria = []
        if actor.role == UserRole.GUEST:
            criteria.append(Booking.user_id == actor.id)
        if status is not None:
            criteria.append(Booking.status == status)
        if room_id is not None:
            criteria.append(Booking.room_id == room_id)
        return self.find_where(db, *criteria, skip=skip, limit=limit)

    def get_booking_analytics(
        self,
        db: Session,
        actor: Actor,
        now: datetime,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> BookingAnalytics:
        """
        Bookings checking in during the period, cancelled ones left out.

        The period defaults to the last 30 days.
        """
        require(actor, BookingAction.VIEW_REPORTS)
        start, end = report_period(now, start_date, end_date)
        bookings = (
            db.query(Booking)
            .filter(
                Booking.check_in_date >= start,
                Booking.check_in_date < end,
                Booking.status != BookingStatus.CANCELLED,
            )
            .all()
        )
        if not bookings:
            return BookingAnalytics(period_start=start, period_end=end)

        nights = sum(count_nights(b.check_in_date, b.check_out_date) for b in bookings)
        return BookingAnalytics(
            period_start=start,
            period_end=end,
            total_bookings=len(bookings),
            total_revenue=to_money(sum((to_money(b.total_amount) for b in bookings), ZERO)),
            average_stay=round(nights / len(bookings), 2),
            status_breakdown=dict(Counter(b.status.value for b in bookings)),
        )

    # Transitions

    def create_booking(self, db: Session, actor: Actor, booking_in: BookingCreate, now: datetime) -> Booking:
        require(actor, BookingAction.CREATE)
        if actor.role == UserRole.GUEST and (booking_in.fees or booking_in.discounts):
            raise PermissionDenied(
                "Only staff can set fees or discounts on a booking.",
                {"role": str(actor.role), "actor_id": actor.id},
            )
        check_in = to_utc_naive(booking_in.check_in_date)
        check_out = to_utc_naive(booking_in.check_out_date)
        nights = self._validate_stay(check_in, check_out, now)

        with self.locks.hold(booking_in.room_id):
            end_snapshot(db)
            try:
                booking = self._insert_booking(db, actor, booking_in, check_in, check_out, nights, now)
            except IntegrityError as exc:
                # reference taken by a concurrent booking on another room
                raise DuplicateReference(
                    "Booking reference collided with a concurrent booking, please retry.",
                    {"room_id": booking_in.room_id},
                ) from exc
        db.refresh(booking)

        logger.info(
            "Booking %s created for room %s (%s to %s, %s guests, total %s)",
            booking.booking_reference,
            booking.room_id,
            check_in.date(),
            check_out.date(),
            booking.guest_count,
            booking.total_amount,
        )
        publish(self.notifier, booking_event(BOOKING_CREATED, booking, now))
        return booking

    def _insert_booking(
        self,
        db: Session,
        actor: Actor,
        booking_in: BookingCreate,
        check_in: datetime,
        check_out: datetime,
        nights: int,
        now: datetime,
    ) -> Booking:
        with unit_of_work(db):
            room = self.room_service.get_for_update(db, booking_in.room_id)
            self.availability.ensure_available(db, room, check_in, check_out, booking_in.guest_count)

            breakdown = price(
                room.base_price,
                nights,
                booking_in.guest_count,
                self.tax_rate_percent,
                fees=booking_in.fees,
                discounts=booking_in.discounts,
            )
            guest_details = booking_in.guest_details.model_dump(mode="json")
            booking = Booking(
                booking_reference=self._unique_reference(db, now),
                user_id=actor.id,
                room_id=room.id,
                status=BookingStatus.PENDING,
                source=booking_in.source,
                check_in_date=check_in,
                check_out_date=check_out,
                guest_count=booking_in.guest_count,
                guest_email=guest_details["primary_guest"]["email"],
                guest_details=guest_details,
                special_requests=[r.model_dump() for r in booking_in.special_requests],
                base_amount=breakdown.base_amount,
                taxes=breakdown.taxes,
                fees=breakdown.fees,
                discounts=breakdown.discounts,
                total_amount=breakdown.total_amount,
                currency=room.currency,
                payment_status=BookingPaymentStatus.PENDING,
                paid_amount=ZERO,
                refunded_amount=ZERO,
                created_at=now,
                updated_at=now,
            )
            db.add(booking)
        return booking

    def modify_booking(
        self, db: Session, actor: Actor, booking_id: int, patch: BookingUpdate, now: datetime
    ) -> Booking:
        booking = self.get_or_raise(db, booking_id)
        require(actor, BookingAction.MODIFY, owner_id=booking.user_id)
        changes = patch.model_dump(exclude_unset=True)

        with self.locks.hold(booking.room_id):
            end_snapshot(db)
            with unit_of_work(db):
                booking = self.get_for_update(db, booking_id)
                if booking.status not in MODIFIABLE_STATUSES:
                    raise InvalidTransition(
                        booking.status,
                        booking.status,
                        f"A {booking.status} booking can no longer be modified.",
                    )
                self._ensure_modifiable_window(booking.status, booking.check_in_date, now)

                check_in = booking.check_in_date
                check_out = booking.check_out_date
                if changes.get("check_in_date") is not None:
                    check_in = to_utc_naive(changes["check_in_date"])
                    if check_in != booking.check_in_date:
                        # the moved stay must also start outside the closed window
                        self._ensure_modifiable_window(booking.status, check_in, now)
                if changes.get("check_out_date") is not None:
                    check_out = to_utc_naive(changes["check_out_date"])
                guest_count = changes.get("guest_count") or booking.guest_count

                reprice = (
                    check_in != booking.check_in_date
                    or check_out != booking.check_out_date
                    or guest_count != booking.guest_count
                )
                if reprice:
                    nights = self._validate_stay(check_in, check_out, now)
                    room = self.room_service.get_for_update(db, booking.room_id)
                    self.availability.ensure_available(
                        db, room, check_in, check_out, guest_count, exclude_booking_id=booking.id
                    )
                    breakdown = price(
                        room.base_price,
                        nights,
                        guest_count,
                        self.tax_rate_percent,
                        fees=booking.fees,
                        discounts=booking.discounts,
                    )
                    booking.check_in_date = check_in
                    booking.check_out_date = check_out
                    booking.guest_count = guest_count
                    booking.base_amount = breakdown.base_amount
                    booking.taxes = breakdown.taxes
                    booking.total_amount = breakdown.total_amount

                if patch.guest_details is not None:
                    booking.guest_details = patch.guest_details.model_dump(mode="json")
                    booking.guest_email = booking.guest_details["primary_guest"]["email"]
                if patch.special_requests is not None:
                    booking.special_requests = [r.model_dump() for r in patch.special_requests]
                if "notes" in changes:
                    booking.notes = changes["notes"]

                confirmed = sync_payment_summary(booking)
                booking.updated_at = now
        db.refresh(booking)

        logger.info("Booking %s modified by user %s", booking.booking_reference, actor.id)
        publish(self.notifier, booking_event(BOOKING_MODIFIED, booking, now))
        if confirmed:
            publish(self.notifier, booking_event(BOOKING_CONFIRMED, booking, now))
        return booking

    def cancel_booking(
        self, db: Session, actor: Actor, booking_id: int, reason: Optional[str], now: datetime
    ) -> CancellationResult:
        """
        Cancel a pending or confirmed booking before its check-in date.

        The fee follows the cancellation policy; the refund due is only
        recorded here, moving the money is a separate refund request.
        """
        booking = self.get_or_raise(db, booking_id)
        require(actor, BookingAction.CANCEL, owner_id=booking.user_id)

        with self.locks.hold(booking.room_id):
            end_snapshot(db)
            with unit_of_work(db):
                booking = self.get_for_update(db, booking_id)
                if booking.status not in CANCELLABLE_STATUSES:
                    raise InvalidTransition(booking.status, BookingStatus.CANCELLED)

                hours_left = hours_between(now, booking.check_in_date)
                if hours_left <= 0:
                    raise InvalidTransition(
                        booking.status,
                        BookingStatus.CANCELLED,
                        "Cannot cancel a booking once its check-in date has been reached.",
                        {"check_in_date": booking.check_in_date.isoformat(), "now": now.isoformat()},
                    )

                fee = cancellation_fee(booking.total_amount, hours_left)
                refund = clamp_non_negative(to_money(booking.paid_amount) - fee)

                booking.status = BookingStatus.CANCELLED
                booking.cancelled_at = now
                booking.cancelled_by = actor.id
                booking.cancellation_reason = reason
                booking.cancellation_fee = fee
                booking.refund_amount = refund
                booking.refund_processed = refund == ZERO
                booking.updated_at = now
        db.refresh(booking)

        logger.info(
            "Booking %s cancelled %.1fh before check-in (fee %s%%: %s, refund due %s)",
            booking.booking_reference,
            hours_left,
            fee_percentage(hours_left),
            fee,
            refund,
        )
        publish(self.notifier, booking_event(BOOKING_CANCELLED, booking, now, fee=fee, refund=refund))
        return CancellationResult(booking=booking, fee_charged=fee, refund_amount=refund)

    def confirm_booking(self, db: Session, actor: Actor, booking_id: int, now: datetime) -> Booking:
        """Staff override, confirms without waiting for the balance to be paid"""
        require(actor, BookingAction.CONFIRM)
        with unit_of_work(db):
            booking = self.get_for_update(db, booking_id)
            if booking.status != BookingStatus.PENDING:
                raise InvalidTransition(booking.status, BookingStatus.CONFIRMED)
            booking.status = BookingStatus.CONFIRMED
            booking.updated_at = now
        db.refresh(booking)

        logger.info("Booking %s confirmed by staff user %s", booking.booking_reference, actor.id)
        publish(self.notifier, booking_event(BOOKING_CONFIRMED, booking, now))
        return booking

    def check_in(
        self,
        db: Session,
        actor: Actor,
        booking_id: int,
        now: datetime,
        checklist: Optional[CheckInRequest] = None,
    ) -> Booking:
        require(actor, BookingAction.CHECK_IN)
        checklist = checklist or CheckInRequest()
        booking = self.get_or_raise(db, booking_id)

        with self.locks.hold(booking.room_id):
            end_snapshot(db)
            with unit_of_work(db):
                booking = self.get_for_update(db, booking_id)
                if booking.status != BookingStatus.CONFIRMED:
                    raise InvalidTransition(booking.status, BookingStatus.CHECKED_IN)

                earliest = booking.check_in_date - timedelta(days=self.early_check_in_days)
                if now < earliest:
                    raise CheckInTooEarly(
                        booking.status,
                        BookingStatus.CHECKED_IN,
                        f"Check-in opens {self.early_check_in_days} day(s) before the check-in date.",
                        {"check_in_date": booking.check_in_date.isoformat(), "earliest_check_in": earliest.isoformat()},
                    )

                booking.status = BookingStatus.CHECKED_IN
                booking.actual_check_in = now
                booking.documents_verified = checklist.documents_verified
                booking.deposit_collected = checklist.deposit_collected
                booking.key_issued = checklist.key_issued
                booking.orientation_completed = checklist.orientation_completed
                booking.checked_in_by = actor.id
                booking.updated_at = now

                room = self.room_service.get_for_update(db, booking.room_id)
                self.room_service.recalculate_occupancy(db, room)
        db.refresh(booking)

        logger.info("Booking %s checked in by user %s", booking.booking_reference, actor.id)
        publish(self.notifier, booking_event(BOOKING_CHECKED_IN, booking, now))
        return booking

    def check_out(
        self,
        db: Session,
        actor: Actor,
        booking_id: int,
        now: datetime,
        checkout: Optional[CheckOutRequest] = None,
    ) -> Booking:
        require(actor, BookingAction.CHECK_OUT)
        checkout = checkout or CheckOutRequest()
        booking = self.get_or_raise(db, booking_id)

        with self.locks.hold(booking.room_id):
            end_snapshot(db)
            with unit_of_work(db):
                booking = self.get_for_update(db, booking_id)
                if booking.status != BookingStatus.CHECKED_IN:
                    raise InvalidTransition(booking.status, BookingStatus.CHECKED_OUT)

                booking.status = BookingStatus.CHECKED_OUT
                booking.actual_check_out = now
                booking.room_inspected = checkout.room_inspected
                booking.damages_noted = checkout.damages_noted
                booking.deposit_returned = checkout.deposit_returned
                booking.key_returned = checkout.key_returned
                booking.checked_out_by = actor.id
                booking.updated_at = now

                room = self.room_service.get_for_update(db, booking.room_id)
                self.room_service.recalculate_occupancy(db, room)
        db.refresh(booking)

        logger.info("Booking %s checked out by user %s", booking.booking_reference, actor.id)
        publish(self.notifier, booking_event(BOOKING_CHECKED_OUT, booking, now))
        return booking

    def mark_no_show(self, db: Session, actor: Actor, booking_id: int, now: datetime) -> Booking:
        require(actor, BookingAction.NO_SHOW)
        booking = self.get_or_raise(db, booking_id)

        with self.locks.hold(booking.room_id):
            end_snapshot(db)
            with unit_of_work(db):
                booking = self.get_for_update(db, booking_id)
                if booking.status != BookingStatus.CONFIRMED:
                    raise InvalidTransition(booking.status, BookingStatus.NO_SHOW)
                if now < booking.check_in_date:
                    raise InvalidTransition(
                        booking.status,
                        BookingStatus.NO_SHOW,
                        "A booking can only be marked as no-show from its check-in date on.",
                        {"check_in_date": booking.check_in_date.isoformat(), "now": now.isoformat()},
                    )
                booking.status = BookingStatus.NO_SHOW
                booking.updated_at = now
        db.refresh(booking)

        logger.info("Booking %s marked as no-show by user %s", booking.booking_reference, actor.id)
        publish(self.notifier, booking_event(BOOKING_NO_SHOW, booking, now))
        return booking

    # Helpers

    def _validate_stay(self, check_in: datetime, check_out: datetime, now: datetime) -> int:
        nights = count_nights(check_in, check_out)
        if nights > self.max_nights:
            raise InvalidDateRange(
                f"A booking cannot exceed {self.max_nights} nights.",
                {"nights": nights, "max_nights": self.max_nights},
            )
        if check_in < start_of_day(now):
            raise InvalidDateRange(
                "Check-in date cannot be in the past.",
                {"check_in_date": check_in.isoformat(), "today": start_of_day(now).date().isoformat()},
            )
        return nights

    def _ensure_modifiable_window(self, status: BookingStatus, check_in: datetime, now: datetime) -> None:
        hours_left = hours_between(now, check_in)
        if hours_left <= self.modification_window_hours:
            raise ModificationWindowClosed(
                status,
                status,
                f"Bookings can only be modified more than {self.modification_window_hours} hours before check-in.",
                {
                    "hours_until_check_in": round(hours_left, 2),
                    "window_hours": self.modification_window_hours,
                    "check_in_date": check_in.isoformat(),
                },
            )

    def _unique_reference(self, db: Session, now: datetime) -> str:
        for attempt in range(1, self.reference_attempts + 1):
            reference = generate_booking_reference(now)
            if self.get_by_reference(db, reference) is None:
                return reference
            logger.warning("Booking reference %s already taken (attempt %s)", reference, attempt)
        raise DuplicateReference(
            "Could not generate a unique booking reference, please retry.",
            {"attempts": self.reference_attempts},
        )
