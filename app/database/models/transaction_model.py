from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Enum as SQLAlchemyEnum,
)
from sqlalchemy.orm import relationship

from database.init import Base
from enums.transaction_type import TransactionType


class BookingTransaction(Base):
    """Append-only money movement ledger of a booking"""

    __tablename__ = "booking_transactions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    type = Column(SQLAlchemyEnum(TransactionType), nullable=False)
    method = Column(String(50), nullable=False, default="card")
    reference = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="completed")
    processed_at = Column(DateTime, nullable=False)

    booking = relationship("Booking", back_populates="transactions")

    __table_args__ = (
        # a gateway reference can only ever be credited (or refunded) once
        UniqueConstraint("type", "reference", name="uq_transaction_type_reference"),
    )
