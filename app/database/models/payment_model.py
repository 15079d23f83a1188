from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    ForeignKey,
    JSON,
    CheckConstraint,
    Enum as SQLAlchemyEnum,
)
from sqlalchemy.orm import relationship
from datetime import datetime

from database.init import Base
from enums.payment_status import PaymentStatus
from enums.refund_status import RefundStatus
from utils.money import ZERO, to_money


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(SQLAlchemyEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    description = Column(String(255), nullable=True)
    # payment-intent id, the idempotency key for webhook matching
    gateway_reference = Column(String(255), nullable=True, unique=True, index=True)
    receipt_number = Column(String(20), nullable=True, unique=True)
    extra = Column("metadata", JSON, nullable=False, default=dict)

    platform_fee = Column(Numeric(10, 2), nullable=False, default=0)
    processing_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total_fees = Column(Numeric(10, 2), nullable=False, default=0)

    failure_code = Column(String(100), nullable=True)
    failure_message = Column(String(500), nullable=True)
    decline_code = Column(String(100), nullable=True)
    failed_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = relationship("Booking", back_populates="payments")
    refunds = relationship(
        "PaymentRefund", back_populates="payment", order_by="PaymentRefund.id", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_payment_amount_positive"),
    )

    @property
    def total_refunded(self):
        """Sum of succeeded refunds"""
        return to_money(
            sum((to_money(r.amount) for r in self.refunds if r.status == RefundStatus.SUCCEEDED), ZERO)
        )

    @property
    def committed_refunds(self):
        """Sum of refunds that are succeeded or still in flight"""
        return to_money(
            sum((to_money(r.amount) for r in self.refunds if r.status != RefundStatus.FAILED), ZERO)
        )

    @property
    def net_amount(self):
        return to_money(to_money(self.amount) - to_money(self.total_fees))

    def __repr__(self):
        return f"<Payment(id={self.id}, reference={self.gateway_reference}, status={self.status})>"


class PaymentRefund(Base):
    __tablename__ = "payment_refunds"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(String(500), nullable=True)
    status = Column(SQLAlchemyEnum(RefundStatus), nullable=False, default=RefundStatus.PENDING)
    gateway_refund_id = Column(String(255), nullable=True, unique=True, index=True)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    failure_message = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    settled_at = Column(DateTime, nullable=True)

    payment = relationship("Payment", back_populates="refunds")

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_refund_amount_positive"),
    )
