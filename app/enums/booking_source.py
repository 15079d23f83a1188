from enum import Enum


class BookingSource(str, Enum):
    """Enum for the channel a booking came through"""

    DIRECT = "direct"
    BOOKING_COM = "booking_com"
    AIRBNB = "airbnb"
    HOSTELWORLD = "hostelworld"
    PHONE = "phone"
    WALK_IN = "walk_in"
    API = "api"

    def __str__(self):
        return self.value
