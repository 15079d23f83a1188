from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from enums.booking_status import BookingStatus
from enums.booking_payment_status import BookingPaymentStatus
from enums.booking_source import BookingSource


class PrimaryGuest(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    nationality: Optional[str] = None
    id_type: Optional[str] = None
    id_number: Optional[str] = None


class AdditionalGuest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    relationship: Optional[str] = None


class GuestDetails(BaseModel):
    primary_guest: PrimaryGuest
    additional_guests: List[AdditionalGuest] = []


class SpecialRequest(BaseModel):
    type: str = "other"
    description: str
    fulfilled: bool = False


class BookingCreate(BaseModel):
    room_id: int
    check_in_date: date
    check_out_date: date
    guest_count: int = Field(1, ge=1)
    guest_details: GuestDetails
    special_requests: List[SpecialRequest] = []
    source: BookingSource = BookingSource.DIRECT
    fees: Decimal = Field(Decimal("0"), ge=0)
    discounts: Decimal = Field(Decimal("0"), ge=0)

    @model_validator(mode="after")
    def check_out_after_check_in(self):
        if self.check_out_date <= self.check_in_date:
            raise ValueError("Check-out date must be after check-in date")
        return self


class BookingUpdate(BaseModel):
    check_in_date: Optional[date] = None
    check_out_date: Optional[date] = None
    guest_count: Optional[int] = Field(None, ge=1)
    guest_details: Optional[GuestDetails] = None
    special_requests: Optional[List[SpecialRequest]] = None
    notes: Optional[str] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = None


class CheckInRequest(BaseModel):
    documents_verified: bool = True
    deposit_collected: bool = True
    key_issued: bool = True
    orientation_completed: bool = True


class CheckOutRequest(BaseModel):
    damages_noted: Optional[str] = None
    room_inspected: bool = True
    deposit_returned: bool = True
    key_returned: bool = True


class BookingResponse(BaseModel):
    id: int
    booking_reference: str
    user_id: int
    room_id: int
    status: BookingStatus
    source: BookingSource
    check_in_date: datetime
    check_out_date: datetime
    actual_check_in: Optional[datetime] = None
    actual_check_out: Optional[datetime] = None
    guest_count: int
    base_amount: Decimal
    taxes: Decimal
    fees: Decimal
    discounts: Decimal
    total_amount: Decimal
    currency: str
    payment_status: BookingPaymentStatus
    paid_amount: Decimal
    remaining_amount: Decimal
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancellation_fee: Optional[Decimal] = None
    refund_amount: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CancellationResponse(BaseModel):
    booking: BookingResponse
    fee_charged: Decimal
    refund_amount: Decimal
