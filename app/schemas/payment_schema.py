from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from enums.payment_status import PaymentStatus
from enums.refund_status import RefundStatus


class PaymentIntentCreate(BaseModel):
    booking_id: int
    amount: Optional[Decimal] = Field(None, gt=0)
    currency: Optional[str] = None
    description: Optional[str] = None


class RefundCreate(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    reason: str = "requested_by_customer"


class RefundResponse(BaseModel):
    id: int
    payment_id: int
    amount: Decimal
    reason: Optional[str] = None
    status: RefundStatus
    gateway_refund_id: Optional[str] = None
    created_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    id: int
    booking_id: int
    amount: Decimal
    currency: str
    status: PaymentStatus
    gateway_reference: Optional[str] = None
    receipt_number: Optional[str] = None
    platform_fee: Decimal
    processing_fee: Decimal
    total_fees: Decimal
    net_amount: Decimal
    total_refunded: Decimal
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None
    processed_at: Optional[datetime] = None
    refunds: List[RefundResponse] = []

    model_config = ConfigDict(from_attributes=True)


class PaymentIntentResponse(BaseModel):
    gateway_reference: str
    client_secret: Optional[str] = None
    payment: PaymentResponse
