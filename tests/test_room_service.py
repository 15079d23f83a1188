from datetime import date, datetime
from decimal import Decimal

import pytest

from conftest import NOW
from enums.room_status import RoomStatus
from enums.room_type import RoomType
from errors import CapacityExceeded, InvalidDateRange, PermissionDenied, RoomInUse, RoomNumberTaken
from schemas.room_schema import RoomCreate, RoomUpdate
from services.room_service import derive_room_status


def room_payload(**overrides):
    data = {"room_number": "201", "type": RoomType.DORM, "capacity": 6, "base_price": Decimal("25.00")}
    data.update(overrides)
    return RoomCreate(**data)


def test_admin_creates_room(db, room_service, actors):
    room = room_service.create_room(db, actors["admin"], room_payload(currency="eur", amenities=["lockers"]))

    assert room.id is not None
    assert room.currency == "EUR"
    assert room.status == RoomStatus.AVAILABLE
    assert room.current_occupancy == 0
    assert room.amenities == ["lockers"]
    assert room_service.get_by_number(db, "201").id == room.id


@pytest.mark.parametrize("role", ["guest", "staff"])
def test_only_admins_manage_rooms(db, room_service, actors, role):
    with pytest.raises(PermissionDenied):
        room_service.create_room(db, actors[role], room_payload())


def test_room_number_is_unique(db, room_service, actors):
    room_service.create_room(db, actors["admin"], room_payload())
    with pytest.raises(RoomNumberTaken):
        room_service.create_room(db, actors["admin"], room_payload(type=RoomType.PRIVATE, capacity=2))


def test_update_room_status_and_price(db, room_service, actors, make_room):
    room = make_room()
    updated = room_service.update_room(
        db, actors["admin"], room.id, RoomUpdate(base_price=Decimal("60.00"), status=RoomStatus.MAINTENANCE)
    )
    assert updated.base_price == Decimal("60.00")
    assert updated.status == RoomStatus.MAINTENANCE


def test_capacity_cannot_drop_below_checked_in_guests(db, room_service, actors, make_room):
    room = make_room(room_type=RoomType.DORM, capacity=6, current_occupancy=4)
    with pytest.raises(CapacityExceeded):
        room_service.update_room(db, actors["admin"], room.id, RoomUpdate(capacity=3))

    updated = room_service.update_room(db, actors["admin"], room.id, RoomUpdate(capacity=4))
    assert updated.status == RoomStatus.OCCUPIED


def test_room_with_active_bookings_cannot_be_deactivated(db, room_service, actors, make_room, book):
    room = make_room()
    book(room)
    with pytest.raises(RoomInUse) as exc_info:
        room_service.deactivate_room(db, actors["admin"], room.id)
    assert exc_info.value.details["active_bookings"] == 1


def test_deactivated_room_leaves_the_inventory(db, room_service, actors, make_room):
    room = make_room()
    other = make_room(room_number="102")
    room_service.deactivate_room(db, actors["admin"], room.id)

    assert [r.id for r in room_service.list_rooms(db)] == [other.id]
    assert len(room_service.list_rooms(db, include_inactive=True)) == 2


def test_find_available_rooms(db, room_service, make_room, book):
    taken = make_room(room_number="101", base_price="50.00")
    free = make_room(room_number="102", base_price="60.00")
    dorm = make_room(room_number="D1", room_type=RoomType.DORM, capacity=6, base_price="20.00")
    make_room(room_number="103", status=RoomStatus.MAINTENANCE)
    book(taken)

    rooms = room_service.find_available_rooms(db, datetime(2024, 12, 2), datetime(2024, 12, 4))
    assert [r.id for r in rooms] == [dorm.id, free.id]

    rooms = room_service.find_available_rooms(db, datetime(2024, 12, 2), datetime(2024, 12, 4), guest_count=3)
    assert [r.id for r in rooms] == [dorm.id]

    rooms = room_service.find_available_rooms(
        db, datetime(2024, 12, 3), datetime(2024, 12, 4), room_type=RoomType.PRIVATE
    )
    assert [r.id for r in rooms] == [taken.id, free.id]


def test_find_available_rooms_rejects_bad_range(db, room_service):
    with pytest.raises(InvalidDateRange):
        room_service.find_available_rooms(db, datetime(2024, 12, 4), datetime(2024, 12, 2))


def test_room_stats(db, room_service, booking_service, actors, make_room, book):
    room = make_room(capacity=2)
    make_room(room_number="D1", room_type=RoomType.DORM, capacity=6)
    booking = book(room, date(2024, 11, 20), date(2024, 11, 22), guest_count=2)
    booking_service.confirm_booking(db, actors["staff"], booking.id, NOW)
    booking_service.check_in(db, actors["staff"], booking.id, NOW)

    stats = room_service.get_room_stats(db)
    assert stats == {
        "total_rooms": 2,
        "occupied_rooms": 1,
        "maintenance_rooms": 0,
        "total_capacity": 8,
        "current_occupancy": 2,
        "occupancy_rate": 25.0,
    }


@pytest.mark.parametrize(
    "room_type, capacity, occupancy, current, expected",
    [
        (RoomType.PRIVATE, 2, 1, RoomStatus.AVAILABLE, RoomStatus.OCCUPIED),
        (RoomType.DORM, 6, 5, RoomStatus.AVAILABLE, RoomStatus.AVAILABLE),
        (RoomType.DORM, 6, 6, RoomStatus.AVAILABLE, RoomStatus.OCCUPIED),
        (RoomType.SHARED, 4, 0, RoomStatus.OCCUPIED, RoomStatus.AVAILABLE),
        (RoomType.PRIVATE, 2, 0, RoomStatus.CLEANING, RoomStatus.CLEANING),
    ],
)
def test_derive_room_status(room_type, capacity, occupancy, current, expected):
    assert derive_room_status(room_type, capacity, occupancy, current) == expected
