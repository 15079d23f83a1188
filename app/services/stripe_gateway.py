"""
Stripe as the payment gateway.

``parse_stripe_event`` is a pure mapping from a Stripe event payload onto
the gateway event union; ``StripeGateway`` wraps the few API calls the
engine makes and turns Stripe errors into GatewayError/GatewayUnreachable.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from decimal import Decimal

import stripe

from config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from errors import GatewayError, GatewayUnreachable
from schemas.gateway_event_schema import (
    PaymentCancelled,
    PaymentFailed,
    PaymentProcessing,
    PaymentSucceeded,
    RefundFailed,
    RefundSucceeded,
)
from utils.logger import get_logger
from utils.money import from_minor_units, to_minor_units

logger = get_logger("stripe_gateway")

REFUND_EVENT_TYPES = ("refund.created", "refund.updated", "charge.refund.updated")


@dataclass(frozen=True)
class GatewayIntent:
    reference: str
    client_secret: Optional[str]
    status: str


@dataclass(frozen=True)
class GatewayRefund:
    reference: str
    # pending, succeeded or failed
    status: str


def _occurred_at(data: Dict[str, Any]) -> Optional[datetime]:
    created = data.get("created")
    if created is None:
        return None
    return datetime.fromtimestamp(created, tz=timezone.utc).replace(tzinfo=None)


def _local_refund_id(metadata: Optional[Dict[str, Any]]) -> Optional[int]:
    value = (metadata or {}).get("refund_id")
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed refund_id metadata %r", value)
        return None


def parse_stripe_event(data: Dict[str, Any]):
    """
    Map a Stripe event onto the gateway event union.

    Returns:
        The matching event, or None for event types the engine does not track
    """
    event_type = data.get("type", "")
    obj = data.get("data", {}).get("object", {})
    base = {"event_id": data["id"], "occurred_at": _occurred_at(data)}

    if event_type == "payment_intent.succeeded":
        received = obj.get("amount_received") or obj.get("amount")
        return PaymentSucceeded(
            gateway_reference=obj["id"],
            amount=from_minor_units(received) if received is not None else None,
            **base,
        )
    if event_type == "payment_intent.payment_failed":
        error = obj.get("last_payment_error") or {}
        return PaymentFailed(
            gateway_reference=obj["id"],
            failure_code=error.get("code"),
            failure_message=error.get("message"),
            decline_code=error.get("decline_code"),
            **base,
        )
    if event_type == "payment_intent.canceled":
        return PaymentCancelled(gateway_reference=obj["id"], **base)
    if event_type == "payment_intent.processing":
        return PaymentProcessing(gateway_reference=obj["id"], **base)

    if event_type in REFUND_EVENT_TYPES:
        status = obj.get("status")
        refund_fields = {
            "gateway_reference": obj.get("payment_intent") or "",
            "refund_reference": obj["id"],
            "local_refund_id": _local_refund_id(obj.get("metadata")),
        }
        if status == "succeeded":
            return RefundSucceeded(**refund_fields, **base)
        if status in ("failed", "canceled"):
            return RefundFailed(
                failure_message=obj.get("failure_reason") or f"Refund {status}",
                **refund_fields,
                **base,
            )
        return None

    return None


class StripeGateway:
    def __init__(self, api_key: str = STRIPE_SECRET_KEY, webhook_secret: str = STRIPE_WEBHOOK_SECRET):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def create_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
        description: Optional[str] = None,
    ) -> GatewayIntent:
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency.lower(),
                metadata={key: str(value) for key, value in metadata.items()},
                description=description,
                automatic_payment_methods={"enabled": True},
                api_key=self.api_key,
            )
        except stripe.APIConnectionError as e:
            raise GatewayUnreachable("Payment gateway is unreachable.", {"reason": str(e)}) from e
        except stripe.StripeError as e:
            raise GatewayError(
                e.user_message or "Payment gateway rejected the payment intent.",
                {"gateway_code": e.code},
            ) from e
        return GatewayIntent(reference=intent.id, client_secret=intent.client_secret, status=intent.status)

    def cancel_intent(self, gateway_reference: str) -> None:
        try:
            stripe.PaymentIntent.cancel(
                gateway_reference,
                cancellation_reason="abandoned",
                api_key=self.api_key,
            )
        except stripe.APIConnectionError as e:
            raise GatewayUnreachable("Payment gateway is unreachable.", {"reason": str(e)}) from e
        except stripe.StripeError as e:
            raise GatewayError(
                e.user_message or "Payment gateway refused to cancel the payment intent.",
                {"gateway_code": e.code},
            ) from e

    def create_refund(
        self,
        gateway_reference: str,
        amount: Decimal,
        reason: Optional[str],
        metadata: Dict[str, Any],
    ) -> GatewayRefund:
        refund_metadata = {key: str(value) for key, value in metadata.items()}
        if reason:
            refund_metadata["reason"] = reason
        try:
            refund = stripe.Refund.create(
                payment_intent=gateway_reference,
                amount=to_minor_units(amount),
                reason="requested_by_customer",
                metadata=refund_metadata,
                api_key=self.api_key,
            )
        except stripe.APIConnectionError as e:
            raise GatewayUnreachable("Payment gateway is unreachable.", {"reason": str(e)}) from e
        except stripe.StripeError as e:
            raise GatewayError(
                e.user_message or "Payment gateway rejected the refund.",
                {"gateway_code": e.code},
            ) from e

        status = refund.status
        if status in ("failed", "canceled"):
            status = "failed"
        elif status != "succeeded":
            status = "pending"
        return GatewayRefund(reference=refund.id, status=status)

    def verify_and_parse_event(self, payload: bytes, signature: Optional[str]):
        if not signature:
            raise GatewayError("Missing webhook signature.")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise GatewayError("Invalid webhook payload or signature.", {"reason": str(e)}) from e
        return parse_stripe_event(json.loads(payload))
