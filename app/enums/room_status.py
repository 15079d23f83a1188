from enum import Enum


class RoomStatus(str, Enum):
    """Enum for the operational status of a room"""

    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    CLEANING = "cleaning"
    OUT_OF_ORDER = "out_of_order"

    def __str__(self):
        return self.value


BOOKABLE_ROOM_STATUSES = (RoomStatus.AVAILABLE, RoomStatus.OCCUPIED)

# Set by staff, never overwritten by occupancy recalculation
MANUAL_ROOM_STATUSES = (
    RoomStatus.MAINTENANCE,
    RoomStatus.CLEANING,
    RoomStatus.OUT_OF_ORDER,
)
