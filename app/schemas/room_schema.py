from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from decimal import Decimal

from enums.room_type import RoomType
from enums.room_status import RoomStatus


class RoomCreate(BaseModel):
    room_number: str
    type: RoomType
    capacity: int = Field(..., ge=1, le=20)
    base_price: Decimal = Field(..., ge=0)
    currency: str = "USD"
    floor: Optional[int] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=1000)
    amenities: List[str] = []


class RoomUpdate(BaseModel):
    capacity: Optional[int] = Field(None, ge=1, le=20)
    base_price: Optional[Decimal] = Field(None, ge=0)
    status: Optional[RoomStatus] = None
    floor: Optional[int] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=1000)
    amenities: Optional[List[str]] = None


class RoomResponse(BaseModel):
    id: int
    room_number: str
    type: RoomType
    capacity: int
    current_occupancy: int
    base_price: Decimal
    currency: str
    status: RoomStatus
    is_active: bool
    floor: Optional[int] = None
    description: Optional[str] = None
    amenities: List[str] = []

    model_config = ConfigDict(from_attributes=True)
