from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional

from database.init import get_db
from database.models.user_model import User
from config import ALGORITHM, SECRET_KEY
from schemas.actor_schema import Actor
from services.booking_service import BookingService
from services.notification_service import NotificationSink, get_notification_sink
from services.payment_service import PaymentService
from services.reconciliation_service import ReconciliationService
from services.room_service import RoomService
from services.stripe_gateway import StripeGateway
from utils.clock import utc_now

# Tokens are issued by the upstream auth service, this API only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/signin")

_gateway: Optional[StripeGateway] = None


def get_current_actor(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> Actor:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid provided token")

    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid credentials")

    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    return Actor(id=user.id, role=user.role)


def staff_required(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Dependency to ensure the current actor is staff or admin"""
    if not actor.is_staff:
        raise HTTPException(status_code=403, detail="Only staff can access this endpoint")
    return actor


def get_now() -> datetime:
    return utc_now()


def get_notifier() -> NotificationSink:
    return get_notification_sink()


def get_gateway() -> StripeGateway:
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway()
    return _gateway


def get_room_service() -> RoomService:
    return RoomService()


def get_booking_service(notifier: NotificationSink = Depends(get_notifier)) -> BookingService:
    return BookingService(notifier=notifier)


def get_reconciliation_service(
    notifier: NotificationSink = Depends(get_notifier),
) -> ReconciliationService:
    return ReconciliationService(notifier=notifier)


def get_payment_service(
    gateway=Depends(get_gateway),
    notifier: NotificationSink = Depends(get_notifier),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
) -> PaymentService:
    return PaymentService(gateway, notifier=notifier, reconciliation=reconciliation)
