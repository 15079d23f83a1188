from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Numeric,
    Boolean,
    JSON,
    CheckConstraint,
    Enum as SQLAlchemyEnum,
)
from sqlalchemy.orm import relationship
from datetime import datetime

from database.init import Base
from enums.booking_status import BookingStatus
from enums.booking_payment_status import BookingPaymentStatus
from enums.booking_source import BookingSource
from utils.money import clamp_non_negative, to_money


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_reference = Column(String(20), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    status = Column(SQLAlchemyEnum(BookingStatus), nullable=False, default=BookingStatus.PENDING, index=True)
    source = Column(SQLAlchemyEnum(BookingSource), nullable=False, default=BookingSource.DIRECT)

    check_in_date = Column(DateTime, nullable=False, index=True)
    check_out_date = Column(DateTime, nullable=False, index=True)
    actual_check_in = Column(DateTime, nullable=True)
    actual_check_out = Column(DateTime, nullable=True)
    guest_count = Column(Integer, nullable=False, default=1)
    guest_email = Column(String(100), nullable=True)
    guest_details = Column(JSON, nullable=False, default=dict)
    special_requests = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)

    # pricing breakdown
    base_amount = Column(Numeric(10, 2), nullable=False)
    taxes = Column(Numeric(10, 2), nullable=False, default=0)
    fees = Column(Numeric(10, 2), nullable=False, default=0)
    discounts = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    # payment summary, payment_status is re-derived after every mutation
    payment_status = Column(
        SQLAlchemyEnum(BookingPaymentStatus), nullable=False, default=BookingPaymentStatus.PENDING
    )
    paid_amount = Column(Numeric(10, 2), nullable=False, default=0)
    refunded_amount = Column(Numeric(10, 2), nullable=False, default=0)

    # cancellation record
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    cancellation_fee = Column(Numeric(10, 2), nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    refund_processed = Column(Boolean, nullable=False, default=False)

    # check-in checklist
    documents_verified = Column(Boolean, nullable=False, default=False)
    deposit_collected = Column(Boolean, nullable=False, default=False)
    key_issued = Column(Boolean, nullable=False, default=False)
    orientation_completed = Column(Boolean, nullable=False, default=False)
    checked_in_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # check-out checklist
    room_inspected = Column(Boolean, nullable=False, default=False)
    damages_noted = Column(Text, nullable=True)
    deposit_returned = Column(Boolean, nullable=False, default=False)
    key_returned = Column(Boolean, nullable=False, default=False)
    checked_out_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="bookings", foreign_keys=[user_id])
    room = relationship("Room", back_populates="bookings")
    payments = relationship("Payment", back_populates="booking", order_by="Payment.id")
    transactions = relationship(
        "BookingTransaction", back_populates="booking", order_by="BookingTransaction.id"
    )

    __table_args__ = (
        CheckConstraint("check_out_date > check_in_date", name="check_booking_dates_ordered"),
        CheckConstraint("guest_count >= 1", name="check_booking_guest_count_positive"),
        CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        CheckConstraint("paid_amount >= 0", name="check_booking_paid_non_negative"),
    )

    @property
    def remaining_amount(self):
        """Always max(0, total - paid), never stored"""
        return clamp_non_negative(to_money(self.total_amount) - to_money(self.paid_amount))

    def __repr__(self):
        return f"<Booking(id={self.id}, reference={self.booking_reference}, status={self.status})>"
