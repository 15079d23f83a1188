from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Boolean,
    DateTime,
    JSON,
    CheckConstraint,
    Enum as SQLAlchemyEnum,
)
from sqlalchemy.orm import relationship
from datetime import datetime

from database.init import Base
from enums.room_type import RoomType
from enums.room_status import RoomStatus


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(20), unique=True, nullable=False, index=True)
    type = Column(SQLAlchemyEnum(RoomType), nullable=False, index=True)
    capacity = Column(Integer, nullable=False)
    current_occupancy = Column(Integer, nullable=False, default=0)
    base_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(SQLAlchemyEnum(RoomStatus), nullable=False, default=RoomStatus.AVAILABLE, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    floor = Column(Integer, nullable=True)
    description = Column(String(1000), nullable=True)
    amenities = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bookings = relationship("Booking", back_populates="room")

    __table_args__ = (
        CheckConstraint("capacity >= 1", name="check_room_capacity_positive"),
        CheckConstraint("current_occupancy >= 0", name="check_room_occupancy_non_negative"),
        CheckConstraint("base_price >= 0", name="check_room_base_price_non_negative"),
    )

    def __repr__(self):
        return f"<Room(id={self.id}, number={self.room_number}, type={self.type})>"
