from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from conftest import NOW, booking_request
from enums.booking_payment_status import BookingPaymentStatus
from enums.booking_status import BookingStatus
from enums.room_status import RoomStatus
from enums.room_type import RoomType
from errors import (
    CapacityExceeded,
    CheckInTooEarly,
    DuplicateReference,
    InvalidDateRange,
    InvalidTransition,
    ModificationWindowClosed,
    NotFound,
    PermissionDenied,
)
from schemas.booking_schema import BookingUpdate, CheckOutRequest
from services.booking_service import BookingService, derive_booking_payment_status
from services.room_lock import RoomLockManager

CHECK_IN = datetime(2024, 12, 1)


def confirmed_booking(db, book, booking_service, actors, room, **kwargs):
    booking = book(room, **kwargs)
    return booking_service.confirm_booking(db, actors["staff"], booking.id, NOW)


def test_create_booking_prices_and_records_everything(book, make_room, sink):
    room = make_room(base_price="50.00")
    booking = book(room, date(2024, 12, 1), date(2024, 12, 2), guest_count=2)

    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == BookingPaymentStatus.PENDING
    assert booking.total_amount == Decimal("115.00")
    assert booking.remaining_amount == Decimal("115.00")
    assert booking.booking_reference.startswith("PVT")
    assert len(booking.booking_reference) == 12
    assert booking.guest_email == "gina@example.com"
    assert booking.created_at == NOW
    assert sink.names() == ["booking.created"]
    assert sink.events[0].recipient == "gina@example.com"


def test_unknown_room_is_not_found(db, booking_service, actors):
    request = booking_request(999, date(2024, 12, 1), date(2024, 12, 2))
    with pytest.raises(NotFound):
        booking_service.create_booking(db, actors["guest"], request, NOW)


def test_guest_cannot_set_fees_or_discounts(db, booking_service, actors, make_room):
    room = make_room()
    request = booking_request(room.id, date(2024, 12, 1), date(2024, 12, 2), discounts=Decimal("10"))

    with pytest.raises(PermissionDenied):
        booking_service.create_booking(db, actors["guest"], request, NOW)

    booking = booking_service.create_booking(db, actors["staff"], request, NOW)
    assert booking.discounts == Decimal("10.00")
    assert booking.total_amount == Decimal("47.50")


def test_stay_longer_than_limit_is_rejected(db, actors, make_room, sink):
    service = BookingService(notifier=sink, lock_manager=RoomLockManager(timeout=1), max_nights=7)
    room = make_room()
    request = booking_request(room.id, date(2024, 12, 1), date(2024, 12, 9))

    with pytest.raises(InvalidDateRange) as exc_info:
        service.create_booking(db, actors["guest"], request, NOW)
    assert exc_info.value.details["max_nights"] == 7


def test_colliding_reference_is_regenerated(db, book, make_room, monkeypatch):
    room = make_room()
    first = book(room, date(2024, 12, 1), date(2024, 12, 2))
    references = iter([first.booking_reference, "PVT000000ZZZ"])
    monkeypatch.setattr("services.booking_service.generate_booking_reference", lambda now: next(references))

    second = book(room, date(2024, 12, 2), date(2024, 12, 3))
    assert second.booking_reference == "PVT000000ZZZ"


def test_reference_generation_gives_up_after_attempts(db, book, make_room, monkeypatch):
    room = make_room()
    first = book(room, date(2024, 12, 1), date(2024, 12, 2))
    monkeypatch.setattr("services.booking_service.generate_booking_reference", lambda now: first.booking_reference)

    with pytest.raises(DuplicateReference) as exc_info:
        book(room, date(2024, 12, 2), date(2024, 12, 3))
    assert exc_info.value.retryable


# Modification


def test_modify_reprices_new_dates(db, book, booking_service, actors, make_room, sink):
    room = make_room(base_price="50.00")
    booking = book(room, date(2024, 12, 1), date(2024, 12, 2))

    patch = BookingUpdate(check_out_date=date(2024, 12, 4), guest_count=2)
    modified = booking_service.modify_booking(db, actors["guest"], booking.id, patch, NOW)

    assert modified.check_out_date == datetime(2024, 12, 4)
    assert modified.base_amount == Decimal("300.00")
    assert modified.total_amount == Decimal("345.00")
    assert "booking.modified" in sink.names()


def test_modify_may_overlap_its_own_range(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = book(room, date(2024, 12, 1), date(2024, 12, 3))

    patch = BookingUpdate(check_in_date=date(2024, 12, 2), check_out_date=date(2024, 12, 5))
    modified = booking_service.modify_booking(db, actors["guest"], booking.id, patch, NOW)
    assert modified.check_in_date == datetime(2024, 12, 2)


def test_modify_into_a_taken_range_fails(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = book(room, date(2024, 12, 1), date(2024, 12, 3))
    book(room, date(2024, 12, 5), date(2024, 12, 7))

    patch = BookingUpdate(check_out_date=date(2024, 12, 6))
    with pytest.raises(CapacityExceeded):
        booking_service.modify_booking(db, actors["guest"], booking.id, patch, NOW)

    db.refresh(booking)
    assert booking.check_out_date == datetime(2024, 12, 3)


def test_modify_window_closes_24_hours_before_check_in(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = book(room, date(2024, 12, 1), date(2024, 12, 3))
    patch = BookingUpdate(notes="late arrival")

    just_in_time = CHECK_IN - timedelta(hours=24, minutes=1)
    modified = booking_service.modify_booking(db, actors["guest"], booking.id, patch, just_in_time)
    assert modified.notes == "late arrival"

    with pytest.raises(ModificationWindowClosed) as exc_info:
        booking_service.modify_booking(db, actors["guest"], booking.id, patch, CHECK_IN - timedelta(hours=24))
    assert exc_info.value.details["window_hours"] == 24


@pytest.mark.parametrize("new_check_in", [date(2024, 11, 20), date(2024, 11, 21)])
def test_booking_cannot_be_moved_into_the_closed_window(db, book, booking_service, actors, make_room, new_check_in):
    room = make_room()
    booking = book(room, date(2024, 12, 1), date(2024, 12, 3))

    patch = BookingUpdate(check_in_date=new_check_in)
    with pytest.raises(ModificationWindowClosed) as exc_info:
        booking_service.modify_booking(db, actors["guest"], booking.id, patch, NOW)
    assert exc_info.value.details["check_in_date"] == f"{new_check_in.isoformat()}T00:00:00"

    db.refresh(booking)
    assert booking.check_in_date == CHECK_IN


def test_other_guest_cannot_touch_a_booking(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = book(room)

    with pytest.raises(PermissionDenied):
        booking_service.get_booking(db, actors["other_guest"], booking.id)
    with pytest.raises(PermissionDenied):
        booking_service.modify_booking(db, actors["other_guest"], booking.id, BookingUpdate(notes="x"), NOW)
    with pytest.raises(PermissionDenied):
        booking_service.cancel_booking(db, actors["other_guest"], booking.id, None, NOW)

    assert booking_service.get_booking(db, actors["staff"], booking.id).id == booking.id


def test_guests_only_list_their_own_bookings(db, book, booking_service, actors, make_room):
    room = make_room(room_type=RoomType.DORM, capacity=6)
    mine = book(room)
    book(room, actor=actors["other_guest"])

    assert [b.id for b in booking_service.list_bookings(db, actors["guest"])] == [mine.id]
    assert len(booking_service.list_bookings(db, actors["staff"])) == 2
    assert booking_service.list_bookings(db, actors["staff"], status=BookingStatus.CONFIRMED) == []


# Cancellation


def test_cancel_three_days_out_charges_a_quarter(db, book, booking_service, actors, make_room, sink):
    room = make_room(base_price="50.00")
    booking = book(room, date(2024, 12, 1), date(2024, 12, 2), guest_count=2)

    result = booking_service.cancel_booking(
        db, actors["guest"], booking.id, "plans changed", CHECK_IN - timedelta(hours=72)
    )

    assert result.booking.status == BookingStatus.CANCELLED
    assert result.fee_charged == Decimal("28.75")
    # nothing was paid, so nothing is owed back
    assert result.refund_amount == Decimal("0.00")
    assert result.booking.refund_processed is True
    assert result.booking.cancelled_by == actors["guest"].id
    assert sink.names()[-1] == "booking.cancelled"


def test_cancel_refund_due_is_paid_minus_fee(db, book, booking_service, actors, make_room):
    room = make_room(base_price="50.00")
    booking = book(room, date(2024, 12, 1), date(2024, 12, 2), guest_count=2)
    booking.paid_amount = Decimal("115.00")
    db.commit()

    result = booking_service.cancel_booking(db, actors["guest"], booking.id, None, CHECK_IN - timedelta(days=10))

    assert result.fee_charged == Decimal("11.50")
    assert result.refund_amount == Decimal("103.50")
    assert result.booking.refund_processed is False


def test_cancel_twice_is_an_invalid_transition(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = book(room)
    booking_service.cancel_booking(db, actors["guest"], booking.id, None, NOW)

    with pytest.raises(InvalidTransition) as exc_info:
        booking_service.cancel_booking(db, actors["guest"], booking.id, None, NOW)
    assert exc_info.value.details == {"current_state": "cancelled", "requested_state": "cancelled"}


def test_cannot_cancel_once_check_in_date_is_reached(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = book(room)
    with pytest.raises(InvalidTransition):
        booking_service.cancel_booking(db, actors["guest"], booking.id, None, CHECK_IN)


# Confirmation, check-in, check-out, no-show


def test_only_staff_confirm(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = book(room)
    with pytest.raises(PermissionDenied):
        booking_service.confirm_booking(db, actors["guest"], booking.id, NOW)

    confirmed = booking_service.confirm_booking(db, actors["staff"], booking.id, NOW)
    assert confirmed.status == BookingStatus.CONFIRMED

    with pytest.raises(InvalidTransition):
        booking_service.confirm_booking(db, actors["staff"], booking.id, NOW)


def test_pending_booking_cannot_check_in(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = book(room)

    with pytest.raises(InvalidTransition) as exc_info:
        booking_service.check_in(db, actors["staff"], booking.id, CHECK_IN)
    assert exc_info.value.current_state == BookingStatus.PENDING
    assert exc_info.value.requested_state == BookingStatus.CHECKED_IN


def test_check_in_opens_one_day_early(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = confirmed_booking(db, book, booking_service, actors, room)

    with pytest.raises(CheckInTooEarly) as exc_info:
        booking_service.check_in(db, actors["staff"], booking.id, CHECK_IN - timedelta(days=1, minutes=1))
    assert exc_info.value.details["earliest_check_in"] == "2024-11-30T00:00:00"

    checked_in = booking_service.check_in(db, actors["staff"], booking.id, CHECK_IN - timedelta(days=1))
    assert checked_in.status == BookingStatus.CHECKED_IN


def test_guest_cannot_check_in_themselves(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = confirmed_booking(db, book, booking_service, actors, room)
    with pytest.raises(PermissionDenied):
        booking_service.check_in(db, actors["guest"], booking.id, CHECK_IN)


def test_check_in_and_out_update_room_occupancy(db, book, booking_service, actors, make_room, sink):
    room = make_room(capacity=2)
    booking = confirmed_booking(db, book, booking_service, actors, room, guest_count=2)

    checked_in = booking_service.check_in(db, actors["staff"], booking.id, CHECK_IN + timedelta(hours=15))
    db.refresh(room)
    assert checked_in.actual_check_in == CHECK_IN + timedelta(hours=15)
    assert checked_in.checked_in_by == actors["staff"].id
    assert checked_in.key_issued is True
    assert room.current_occupancy == 2
    assert room.status == RoomStatus.OCCUPIED

    checkout = CheckOutRequest(damages_noted="scratched table")
    checked_out = booking_service.check_out(db, actors["staff"], booking.id, datetime(2024, 12, 3, 10), checkout)
    db.refresh(room)
    assert checked_out.status == BookingStatus.CHECKED_OUT
    assert checked_out.damages_noted == "scratched table"
    assert room.current_occupancy == 0
    assert room.status == RoomStatus.AVAILABLE
    assert sink.names()[-2:] == ["booking.checked_in", "booking.checked_out"]


def test_partially_filled_dorm_stays_available(db, book, booking_service, actors, make_room):
    room = make_room(room_number="D1", room_type=RoomType.DORM, capacity=6)
    booking = confirmed_booking(db, book, booking_service, actors, room, guest_count=2)

    booking_service.check_in(db, actors["staff"], booking.id, CHECK_IN)
    db.refresh(room)
    assert room.current_occupancy == 2
    assert room.status == RoomStatus.AVAILABLE


def test_check_out_requires_checked_in(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = confirmed_booking(db, book, booking_service, actors, room)
    with pytest.raises(InvalidTransition):
        booking_service.check_out(db, actors["staff"], booking.id, CHECK_IN)


def test_no_show_from_check_in_date_on(db, book, booking_service, actors, make_room):
    room = make_room()
    booking = confirmed_booking(db, book, booking_service, actors, room)

    with pytest.raises(InvalidTransition):
        booking_service.mark_no_show(db, actors["staff"], booking.id, CHECK_IN - timedelta(hours=1))

    no_show = booking_service.mark_no_show(db, actors["staff"], booking.id, CHECK_IN + timedelta(hours=20))
    assert no_show.status == BookingStatus.NO_SHOW

    # a no-show no longer holds the room
    assert book(room).status == BookingStatus.PENDING


@pytest.mark.parametrize(
    "total, paid, refunded, expected",
    [
        ("115.00", "0", "0", BookingPaymentStatus.PENDING),
        ("115.00", "50.00", "0", BookingPaymentStatus.PARTIAL),
        ("115.00", "115.00", "0", BookingPaymentStatus.PAID),
        ("115.00", "115.00", "20.00", BookingPaymentStatus.PAID),
        ("115.00", "115.00", "115.00", BookingPaymentStatus.REFUNDED),
    ],
)
def test_booking_payment_status_derivation(total, paid, refunded, expected):
    assert derive_booking_payment_status(Decimal(total), Decimal(paid), Decimal(refunded)) == expected


# Analytics


def test_booking_analytics_over_a_date_range(db, book, booking_service, actors, make_room):
    room = make_room(base_price="50.00")
    short = book(room, date(2024, 12, 1), date(2024, 12, 2), guest_count=2)
    longer = confirmed_booking(
        db, book, booking_service, actors, room, check_in=date(2024, 12, 10), check_out=date(2024, 12, 13)
    )
    cancelled = book(room, date(2024, 12, 20), date(2024, 12, 22))
    booking_service.cancel_booking(db, actors["guest"], cancelled.id, None, NOW)
    book(room, date(2025, 1, 5), date(2025, 1, 6))

    analytics = booking_service.get_booking_analytics(
        db, actors["staff"], NOW, start_date=date(2024, 12, 1), end_date=date(2024, 12, 31)
    )

    assert analytics.period_start == datetime(2024, 12, 1)
    assert analytics.period_end == datetime(2025, 1, 1)
    assert analytics.total_bookings == 2
    assert analytics.total_revenue == short.total_amount + longer.total_amount
    assert short.total_amount == Decimal("115.00")
    assert analytics.average_stay == 2.0
    assert analytics.status_breakdown == {"pending": 1, "confirmed": 1}


def test_booking_analytics_default_to_the_last_30_days(db, book, booking_service, actors, make_room):
    room = make_room()
    book(room, date(2024, 11, 25), date(2024, 11, 27))
    book(room, date(2024, 12, 5), date(2024, 12, 6))

    analytics = booking_service.get_booking_analytics(db, actors["admin"], datetime(2024, 12, 1, 12, 0))

    assert analytics.period_start == datetime(2024, 11, 1, 12, 0)
    assert analytics.period_end == datetime(2024, 12, 1, 12, 0)
    assert analytics.total_bookings == 1
    assert analytics.average_stay == 2.0


def test_booking_analytics_for_an_empty_period(db, booking_service, actors):
    analytics = booking_service.get_booking_analytics(
        db, actors["staff"], NOW, start_date=date(2024, 6, 1), end_date=date(2024, 6, 30)
    )

    assert analytics.total_bookings == 0
    assert analytics.total_revenue == Decimal("0.00")
    assert analytics.average_stay == 0.0
    assert analytics.status_breakdown == {}


def test_booking_analytics_are_staff_only(db, booking_service, actors):
    with pytest.raises(PermissionDenied):
        booking_service.get_booking_analytics(db, actors["guest"], NOW)


def test_booking_analytics_reject_a_reversed_range(db, booking_service, actors):
    with pytest.raises(InvalidDateRange):
        booking_service.get_booking_analytics(
            db, actors["staff"], NOW, start_date=date(2024, 12, 31), end_date=date(2024, 12, 1)
        )
