"""
Gateway webhook events as one tagged union.

The gateway client turns a verified raw payload into exactly one of these
variants; the reconciliation service dispatches on ``kind``.
"""

from pydantic import BaseModel, Field, TypeAdapter
from typing import Annotated, Literal, Optional, Union
from datetime import datetime
from decimal import Decimal

from enums.gateway_event_kind import GatewayEventKind


class GatewayEventBase(BaseModel):
    event_id: str
    gateway_reference: str
    occurred_at: Optional[datetime] = None


class PaymentProcessing(GatewayEventBase):
    kind: Literal[GatewayEventKind.PAYMENT_PROCESSING] = GatewayEventKind.PAYMENT_PROCESSING


class PaymentSucceeded(GatewayEventBase):
    kind: Literal[GatewayEventKind.PAYMENT_SUCCEEDED] = GatewayEventKind.PAYMENT_SUCCEEDED
    amount: Optional[Decimal] = None


class PaymentFailed(GatewayEventBase):
    kind: Literal[GatewayEventKind.PAYMENT_FAILED] = GatewayEventKind.PAYMENT_FAILED
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None
    decline_code: Optional[str] = None


class PaymentCancelled(GatewayEventBase):
    kind: Literal[GatewayEventKind.PAYMENT_CANCELLED] = GatewayEventKind.PAYMENT_CANCELLED


class RefundSucceeded(GatewayEventBase):
    kind: Literal[GatewayEventKind.REFUND_SUCCEEDED] = GatewayEventKind.REFUND_SUCCEEDED
    refund_reference: str
    local_refund_id: Optional[int] = None


class RefundFailed(GatewayEventBase):
    kind: Literal[GatewayEventKind.REFUND_FAILED] = GatewayEventKind.REFUND_FAILED
    refund_reference: str
    local_refund_id: Optional[int] = None
    failure_message: Optional[str] = None


GatewayEvent = Annotated[
    Union[
        PaymentProcessing,
        PaymentSucceeded,
        PaymentFailed,
        PaymentCancelled,
        RefundSucceeded,
        RefundFailed,
    ],
    Field(discriminator="kind"),
]

gateway_event_adapter = TypeAdapter(GatewayEvent)


def parse_gateway_event(data: dict):
    return gateway_event_adapter.validate_python(data)
