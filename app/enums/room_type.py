from enum import Enum


class RoomType(str, Enum):
    """Enum for different types of bookable rooms"""

    PRIVATE = "private"
    SHARED = "shared"
    DORM = "dorm"
    SUITE = "suite"

    def __str__(self):
        return self.value


# Whole-room types: any overlapping booking blocks the room
EXCLUSIVE_ROOM_TYPES = (RoomType.PRIVATE, RoomType.SUITE)
