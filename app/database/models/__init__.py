from .user_model import User
from .room_model import Room
from .booking_model import Booking
from .payment_model import Payment, PaymentRefund
from .transaction_model import BookingTransaction
from .gateway_event_model import GatewayEvent

__all__ = ["User", "Room", "Booking", "Payment", "PaymentRefund", "BookingTransaction", "GatewayEvent"]
