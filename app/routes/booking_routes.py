from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date, datetime

from schemas.actor_schema import Actor
from schemas.booking_schema import (
    BookingCancel,
    BookingCreate,
    BookingResponse,
    BookingUpdate,
    CancellationResponse,
    CheckInRequest,
    CheckOutRequest,
)
from schemas.payment_schema import PaymentResponse
from services.booking_service import BookingService
from services.payment_service import PaymentService
from enums.booking_status import BookingStatus
from errors import BookingEngineError
from utils.dependencies import (
    get_booking_service,
    get_current_actor,
    get_db,
    get_now,
    get_payment_service,
)
from utils.logger import get_logger
from utils.retry import retry_once
from responses.success import created_response, data_response
from responses.error import domain_error_response, internal_server_error

router = APIRouter(prefix="/bookings", tags=["Bookings"])
logger = get_logger("booking_routes")


@router.post("", status_code=201)
def create_booking(
    booking_in: BookingCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
):
    try:
        booking = retry_once(lambda: booking_service.create_booking(db, actor, booking_in, now))
        return created_response(BookingResponse.model_validate(booking))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to create booking")
        return internal_server_error()


@router.get("")
def list_bookings(
    status: Optional[BookingStatus] = None,
    room_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        bookings = booking_service.list_bookings(db, actor, status, room_id, skip, limit)
        return data_response([BookingResponse.model_validate(b) for b in bookings])
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to list bookings")
        return internal_server_error()


@router.get("/analytics")
def booking_analytics(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
):
    try:
        return data_response(booking_service.get_booking_analytics(db, actor, now, start_date, end_date))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to build booking analytics")
        return internal_server_error()


@router.get("/{booking_id}")
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        booking = booking_service.get_booking(db, actor, booking_id)
        return data_response(BookingResponse.model_validate(booking))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to fetch booking %s", booking_id)
        return internal_server_error()


@router.patch("/{booking_id}")
def modify_booking(
    booking_id: int,
    patch: BookingUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
):
    try:
        booking = retry_once(lambda: booking_service.modify_booking(db, actor, booking_id, patch, now))
        return data_response(BookingResponse.model_validate(booking))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to modify booking %s", booking_id)
        return internal_server_error()


@router.post("/{booking_id}/cancel")
def cancel_booking(
    booking_id: int,
    cancel_in: BookingCancel,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
):
    try:
        result = booking_service.cancel_booking(db, actor, booking_id, cancel_in.reason, now)
        return data_response(
            CancellationResponse(
                booking=BookingResponse.model_validate(result.booking),
                fee_charged=result.fee_charged,
                refund_amount=result.refund_amount,
            )
        )
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to cancel booking %s", booking_id)
        return internal_server_error()


@router.post("/{booking_id}/confirm")
def confirm_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
):
    try:
        booking = booking_service.confirm_booking(db, actor, booking_id, now)
        return data_response(BookingResponse.model_validate(booking))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to confirm booking %s", booking_id)
        return internal_server_error()


@router.post("/{booking_id}/check-in")
def check_in(
    booking_id: int,
    checklist: Optional[CheckInRequest] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
):
    try:
        booking = booking_service.check_in(db, actor, booking_id, now, checklist)
        return data_response(BookingResponse.model_validate(booking))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to check in booking %s", booking_id)
        return internal_server_error()


@router.post("/{booking_id}/check-out")
def check_out(
    booking_id: int,
    checkout: Optional[CheckOutRequest] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
):
    try:
        booking = booking_service.check_out(db, actor, booking_id, now, checkout)
        return data_response(BookingResponse.model_validate(booking))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to check out booking %s", booking_id)
        return internal_server_error()


@router.post("/{booking_id}/no-show")
def mark_no_show(
    booking_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
):
    try:
        booking = booking_service.mark_no_show(db, actor, booking_id, now)
        return data_response(BookingResponse.model_validate(booking))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to mark booking %s as no-show", booking_id)
        return internal_server_error()


@router.get("/{booking_id}/payments")
def list_booking_payments(
    booking_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    payment_service: PaymentService = Depends(get_payment_service),
):
    try:
        payments = payment_service.list_payments_for_booking(db, actor, booking_id)
        return data_response([PaymentResponse.model_validate(p) for p in payments])
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to list payments of booking %s", booking_id)
        return internal_server_error()
