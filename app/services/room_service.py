from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from database.models.booking_model import Booking
from database.models.room_model import Room
from enums.booking_action import BookingAction
from enums.booking_status import BookingStatus, CAPACITY_HOLDING_STATUSES
from enums.room_status import RoomStatus, MANUAL_ROOM_STATUSES
from enums.room_type import RoomType, EXCLUSIVE_ROOM_TYPES
from errors import CapacityExceeded, RoomInUse, RoomNumberTaken
from schemas.actor_schema import Actor
from schemas.room_schema import RoomCreate, RoomUpdate
from services.availability_service import AvailabilityService
from services.base_service import BaseService, end_snapshot, unit_of_work
from services.capabilities import require
from services.pricing_service import count_nights
from utils.logger import get_logger

logger = get_logger("room_service")


def derive_room_status(room_type: RoomType, capacity: int, occupancy: int, current: RoomStatus) -> RoomStatus:
    """Room status from who is checked in; statuses set by staff win"""
    if current in MANUAL_ROOM_STATUSES:
        return current
    if occupancy >= capacity:
        return RoomStatus.OCCUPIED
    if occupancy > 0 and room_type in EXCLUSIVE_ROOM_TYPES:
        return RoomStatus.OCCUPIED
    return RoomStatus.AVAILABLE


class RoomService(BaseService):
    entity_name = "Room"

    def __init__(self):
        super().__init__(Room)
        self.availability = AvailabilityService()

    def get_by_number(self, db: Session, room_number: str) -> Optional[Room]:
        return db.query(Room).filter(Room.room_number == room_number).first()

    def list_rooms(
        self,
        db: Session,
        room_type: Optional[RoomType] = None,
        include_inactive: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Room]:
        criteria = []
        if not include_inactive:
            criteria.append(Room.is_active.is_(True))
        if room_type is not None:
            criteria.append(Room.type == room_type)
        return self.find_where(db, *criteria, skip=skip, limit=limit)

    def create_room(self, db: Session, actor: Actor, room_in: RoomCreate) -> Room:
        require(actor, BookingAction.MANAGE_ROOMS)
        if self.get_by_number(db, room_in.room_number):
            raise RoomNumberTaken(
                f"Room number {room_in.room_number} already exists.",
                {"room_number": room_in.room_number},
            )

        room = Room(
            **room_in.model_dump(),
            current_occupancy=0,
            status=RoomStatus.AVAILABLE,
            is_active=True,
        )
        room.currency = room.currency.upper()
        room = self.save(db, room)
        logger.info("Room %s (%s) created by user %s", room.room_number, room.type, actor.id)
        return room

    def update_room(self, db: Session, actor: Actor, room_id: int, room_in: RoomUpdate) -> Room:
        require(actor, BookingAction.MANAGE_ROOMS)
        with unit_of_work(db):
            room = self.get_for_update(db, room_id)
            changes = room_in.model_dump(exclude_unset=True)

            capacity = changes.get("capacity")
            if capacity is not None and capacity < room.current_occupancy:
                raise CapacityExceeded(
                    "Capacity cannot drop below the guests currently checked in.",
                    {"room_id": room.id, "capacity": capacity, "current_occupancy": room.current_occupancy},
                )

            for key, value in changes.items():
                setattr(room, key, value)
            room.status = derive_room_status(room.type, room.capacity, room.current_occupancy, room.status)
        db.refresh(room)
        return room

    def deactivate_room(self, db: Session, actor: Actor, room_id: int) -> Room:
        """Rooms are never deleted, only taken out of the bookable inventory"""
        require(actor, BookingAction.MANAGE_ROOMS)
        end_snapshot(db)
        with unit_of_work(db):
            room = self.get_for_update(db, room_id)
            active_bookings = (
                db.query(func.count(Booking.id))
                .filter(
                    Booking.room_id == room.id,
                    Booking.status.in_(CAPACITY_HOLDING_STATUSES),
                )
                .scalar()
            )
            if active_bookings:
                raise RoomInUse(
                    "Cannot deactivate a room with active bookings.",
                    {"room_id": room.id, "active_bookings": active_bookings},
                )
            room.is_active = False
        db.refresh(room)
        logger.info("Room %s deactivated by user %s", room.room_number, actor.id)
        return room

    def recalculate_occupancy(self, db: Session, room: Room) -> Room:
        """
        Recompute current occupancy and status from checked-in bookings

        Runs inside the caller's transaction, pending changes are flushed
        first so the booking being checked in or out is counted correctly.
        """
        db.flush()
        occupancy = (
            db.query(func.coalesce(func.sum(Booking.guest_count), 0))
            .filter(Booking.room_id == room.id, Booking.status == BookingStatus.CHECKED_IN)
            .scalar()
        )
        room.current_occupancy = int(occupancy)
        room.status = derive_room_status(room.type, room.capacity, room.current_occupancy, room.status)
        return room

    def find_available_rooms(
        self,
        db: Session,
        check_in: datetime,
        check_out: datetime,
        guest_count: int = 1,
        room_type: Optional[RoomType] = None,
    ) -> List[Room]:
        count_nights(check_in, check_out)
        query = db.query(Room).filter(
            Room.is_active.is_(True),
            Room.status.notin_(MANUAL_ROOM_STATUSES),
            Room.capacity >= guest_count,
        )
        if room_type is not None:
            query = query.filter(Room.type == room_type)

        return [
            room
            for room in query.order_by(Room.base_price, Room.id).all()
            if self.availability.is_available(db, room, check_in, check_out, guest_count)
        ]

    def get_room_stats(self, db: Session) -> dict:
        rooms = db.query(Room).filter(Room.is_active.is_(True)).all()
        total_capacity = sum(room.capacity for room in rooms)
        current_occupancy = sum(room.current_occupancy for room in rooms)
        occupancy_rate = round(current_occupancy / total_capacity * 100, 2) if total_capacity else 0.0
        return {
            "total_rooms": len(rooms),
            "occupied_rooms": sum(1 for room in rooms if room.status == RoomStatus.OCCUPIED),
            "maintenance_rooms": sum(1 for room in rooms if room.status == RoomStatus.MAINTENANCE),
            "total_capacity": total_capacity,
            "current_occupancy": current_occupancy,
            "occupancy_rate": occupancy_rate,
        }
