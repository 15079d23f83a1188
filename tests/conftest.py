import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFICATIONS_ENABLED"] = "false"

import json
import time
from datetime import datetime, date, timedelta, timezone
from decimal import Decimal

import pytest
from jose import jwt
from sqlalchemy.orm import sessionmaker

from config import ALGORITHM, SECRET_KEY
from database.init import Base, build_engine
from database.models import Room, User
from enums.room_type import RoomType
from enums.user_role import UserRole
from errors import GatewayError
from schemas.actor_schema import Actor
from schemas.booking_schema import BookingCreate
from schemas.gateway_event_schema import PaymentSucceeded
from services.booking_service import BookingService
from services.payment_service import PaymentService
from services.reconciliation_service import ReconciliationService
from services.room_lock import RoomLockManager
from services.room_service import RoomService
from services.stripe_gateway import GatewayIntent, GatewayRefund, parse_stripe_event

NOW = datetime(2024, 11, 20, 12, 0)


class RecordingSink:
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    def names(self):
        return [event.name for event in self.events]


class FakeGateway:
    """Stands in for Stripe, records every call"""

    def __init__(self):
        self.intents = []
        self.cancelled_intents = []
        self.refunds = []
        self.refund_status = "pending"
        self.intent_error = None
        self.cancel_error = None
        self.refund_error = None
        self.delay = 0

    def create_intent(self, amount, currency, metadata, description=None):
        if self.intent_error is not None:
            raise self.intent_error
        reference = f"pi_test_{len(self.intents) + 1}"
        self.intents.append({"reference": reference, "amount": amount, "currency": currency, "metadata": metadata})
        return GatewayIntent(reference=reference, client_secret=f"{reference}_secret", status="requires_payment_method")

    def cancel_intent(self, gateway_reference):
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled_intents.append(gateway_reference)

    def create_refund(self, gateway_reference, amount, reason, metadata):
        if self.delay:
            time.sleep(self.delay)
        if self.refund_error is not None:
            raise self.refund_error
        reference = f"re_test_{len(self.refunds) + 1}"
        self.refunds.append(
            {"reference": reference, "payment": gateway_reference, "amount": amount, "metadata": metadata}
        )
        return GatewayRefund(reference=reference, status=self.refund_status)

    def verify_and_parse_event(self, payload, signature):
        if signature != "valid-signature":
            raise GatewayError("Invalid webhook payload or signature.")
        return parse_stripe_event(json.loads(payload))


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def users(db):
    people = {
        "guest": User(name="Gina Guest", email="gina@example.com", role=UserRole.GUEST),
        "other_guest": User(name="Omar Other", email="omar@example.com", role=UserRole.GUEST),
        "staff": User(name="Sam Staff", email="sam@example.com", role=UserRole.STAFF),
        "admin": User(name="Ada Admin", email="ada@example.com", role=UserRole.ADMIN),
    }
    db.add_all(people.values())
    db.commit()
    return people


@pytest.fixture
def actors(users):
    return {key: Actor(id=user.id, role=user.role) for key, user in users.items()}


@pytest.fixture
def make_room(db):
    def _make_room(room_number="101", room_type=RoomType.PRIVATE, capacity=2, base_price="50.00", **extra):
        room = Room(
            room_number=room_number,
            type=room_type,
            capacity=capacity,
            base_price=Decimal(base_price),
            currency="USD",
            **extra,
        )
        db.add(room)
        db.commit()
        db.refresh(room)
        return room

    return _make_room


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def booking_service(sink):
    return BookingService(notifier=sink, lock_manager=RoomLockManager(timeout=1))


@pytest.fixture
def room_service():
    return RoomService()


@pytest.fixture
def reconciliation(sink):
    return ReconciliationService(notifier=sink)


@pytest.fixture
def payment_service(gateway, sink, reconciliation):
    return PaymentService(gateway, notifier=sink, reconciliation=reconciliation, gateway_timeout=2)


def booking_request(room_id, check_in, check_out, guest_count=1, **extra):
    return BookingCreate(
        room_id=room_id,
        check_in_date=check_in,
        check_out_date=check_out,
        guest_count=guest_count,
        guest_details={
            "primary_guest": {"first_name": "Gina", "last_name": "Guest", "email": "gina@example.com"}
        },
        **extra,
    )


@pytest.fixture
def book(db, booking_service, actors):
    """Create a booking as the default guest"""

    def _book(room, check_in=date(2024, 12, 1), check_out=date(2024, 12, 3), guest_count=1, actor=None, now=NOW):
        return booking_service.create_booking(
            db, actor or actors["guest"], booking_request(room.id, check_in, check_out, guest_count), now
        )

    return _book


def create_access_token(data, expires_delta=timedelta(minutes=30)):
    """Sign a token the way the upstream auth service does"""
    to_encode = {**data, "exp": datetime.now(timezone.utc) + expires_delta}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def succeeded_event(gateway_reference, event_id="evt_succeeded_1", amount=None):
    return PaymentSucceeded(event_id=event_id, gateway_reference=gateway_reference, amount=amount)
