from fastapi import APIRouter, Depends, Header, Query, Request
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date, datetime

from schemas.actor_schema import Actor
from schemas.payment_schema import (
    PaymentIntentCreate,
    PaymentIntentResponse,
    PaymentResponse,
    RefundCreate,
    RefundResponse,
)
from enums.payment_status import PaymentStatus
from services.payment_service import PaymentService
from services.reconciliation_service import ReconciliationService
from errors import BookingEngineError, GatewayError
from utils.dependencies import (
    get_current_actor,
    get_db,
    get_gateway,
    get_now,
    get_payment_service,
    get_reconciliation_service,
)
from utils.logger import get_logger
from responses.success import created_response, data_response
from responses.error import bad_request_error, domain_error_response, internal_server_error

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger("payment_routes")


@router.post("/intent", status_code=201)
def create_payment_intent(
    intent_in: PaymentIntentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    payment_service: PaymentService = Depends(get_payment_service),
    now: datetime = Depends(get_now),
):
    try:
        result = payment_service.initiate_payment(db, actor, intent_in, now)
        return created_response(
            PaymentIntentResponse(
                gateway_reference=result.gateway_reference,
                client_secret=result.client_secret,
                payment=PaymentResponse.model_validate(result.payment),
            )
        )
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to create payment intent")
        return internal_server_error()


@router.get("")
def list_payments(
    status: Optional[PaymentStatus] = None,
    user_id: Optional[int] = None,
    booking_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    payment_service: PaymentService = Depends(get_payment_service),
):
    try:
        payments = payment_service.list_payments(
            db, actor, status, user_id, booking_id, start_date, end_date, skip, limit
        )
        return data_response([PaymentResponse.model_validate(p) for p in payments])
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to list payments")
        return internal_server_error()


@router.get("/analytics")
def payment_analytics(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    payment_service: PaymentService = Depends(get_payment_service),
    now: datetime = Depends(get_now),
):
    try:
        return data_response(payment_service.get_payment_analytics(db, actor, now, start_date, end_date))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to build payment analytics")
        return internal_server_error()


@router.get("/{payment_id}")
def get_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    payment_service: PaymentService = Depends(get_payment_service),
):
    try:
        payment = payment_service.get_payment(db, actor, payment_id)
        return data_response(PaymentResponse.model_validate(payment))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to fetch payment %s", payment_id)
        return internal_server_error()


@router.post("/{payment_id}/refunds", status_code=201)
def request_refund(
    payment_id: int,
    refund_in: RefundCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    payment_service: PaymentService = Depends(get_payment_service),
    now: datetime = Depends(get_now),
):
    try:
        refund = payment_service.request_refund(db, actor, payment_id, refund_in, now)
        return created_response(RefundResponse.model_validate(refund))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to refund payment %s", payment_id)
        return internal_server_error()


@router.post("/webhook")
async def gateway_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
    now: datetime = Depends(get_now),
):
    """
    Gateway webhook. Every verified delivery is acknowledged, including
    duplicates and events for payments we do not know.
    """
    payload = await request.body()
    # applying an event waits on row locks, so it runs in the threadpool
    return await run_in_threadpool(
        handle_gateway_delivery, payload, stripe_signature, db, gateway, reconciliation, now
    )


def handle_gateway_delivery(
    payload: bytes,
    stripe_signature: Optional[str],
    db: Session,
    gateway,
    reconciliation: ReconciliationService,
    now: datetime,
):
    try:
        event = gateway.verify_and_parse_event(payload, stripe_signature)
    except GatewayError as e:
        logger.warning("Rejected webhook delivery: %s", e.message)
        return bad_request_error(e.message)

    if event is None:
        return {"received": True}

    try:
        reconciliation.apply_gateway_event(db, event, now)
    except BookingEngineError as e:
        logger.error("Could not apply gateway event %s: %s", event.event_id, e.message)
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to apply gateway event %s", event.event_id)
        return internal_server_error()
    return {"received": True}
