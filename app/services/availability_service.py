from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from database.models.booking_model import Booking
from database.models.room_model import Room
from enums.booking_status import CAPACITY_HOLDING_STATUSES
from enums.room_status import BOOKABLE_ROOM_STATUSES
from enums.room_type import EXCLUSIVE_ROOM_TYPES
from errors import CapacityExceeded, RoomInactive
from utils.clock import to_utc_naive


class AvailabilityService:
    """
    Decides whether a room still has room for a date range.

    Existing bookings are the only source of truth. Ranges are half-open, so
    a stay ending on a day never collides with one starting that same day.
    """

    def ensure_bookable(self, room: Room) -> None:
        if not room.is_active or room.status not in BOOKABLE_ROOM_STATUSES:
            raise RoomInactive(room.id, bool(room.is_active), str(room.status))

    def conflicting_bookings(
        self,
        db: Session,
        room_id: int,
        check_in: datetime,
        check_out: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> List[Booking]:
        query = db.query(Booking).filter(
            Booking.room_id == room_id,
            Booking.status.in_(CAPACITY_HOLDING_STATUSES),
            Booking.check_in_date < to_utc_naive(check_out),
            Booking.check_out_date > to_utc_naive(check_in),
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.check_in_date).all()

    def remaining_capacity(
        self,
        db: Session,
        room: Room,
        check_in: datetime,
        check_out: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> int:
        conflicts = self.conflicting_bookings(db, room.id, check_in, check_out, exclude_booking_id)
        if room.type in EXCLUSIVE_ROOM_TYPES:
            return 0 if conflicts else room.capacity
        return room.capacity - sum(booking.guest_count for booking in conflicts)

    def is_available(
        self,
        db: Session,
        room: Room,
        check_in: datetime,
        check_out: datetime,
        guest_count: int = 1,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        """Raises RoomInactive for rooms that cannot be booked at all"""
        self.ensure_bookable(room)
        if guest_count > room.capacity:
            return False
        remaining = self.remaining_capacity(db, room, check_in, check_out, exclude_booking_id)
        return guest_count <= remaining

    def ensure_available(
        self,
        db: Session,
        room: Room,
        check_in: datetime,
        check_out: datetime,
        guest_count: int,
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        self.ensure_bookable(room)
        if guest_count > room.capacity:
            raise CapacityExceeded(
                f"Room capacity is {room.capacity}, {guest_count} guests requested.",
                {"room_id": room.id, "capacity": room.capacity, "requested_guests": guest_count},
            )

        conflicts = self.conflicting_bookings(db, room.id, check_in, check_out, exclude_booking_id)
        if room.type in EXCLUSIVE_ROOM_TYPES:
            booked_guests = room.capacity if conflicts else 0
        else:
            booked_guests = sum(booking.guest_count for booking in conflicts)

        if booked_guests + guest_count > room.capacity:
            raise CapacityExceeded(
                "Room is not available for the selected dates.",
                {
                    "room_id": room.id,
                    "room_type": str(room.type),
                    "capacity": room.capacity,
                    "booked_guests": booked_guests,
                    "requested_guests": guest_count,
                    "conflicting_ranges": [
                        {
                            "booking_reference": booking.booking_reference,
                            "check_in_date": booking.check_in_date.isoformat(),
                            "check_out_date": booking.check_out_date.isoformat(),
                        }
                        for booking in conflicts
                    ],
                },
            )
