from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from schemas.actor_schema import Actor
from schemas.room_schema import RoomCreate, RoomResponse, RoomUpdate
from services.room_service import RoomService
from enums.room_type import RoomType
from errors import BookingEngineError
from utils.clock import to_utc_naive
from utils.dependencies import get_current_actor, get_db, get_room_service, staff_required
from utils.logger import get_logger
from responses.success import created_response, data_response
from responses.error import domain_error_response, internal_server_error

router = APIRouter(prefix="/rooms", tags=["Rooms"])
logger = get_logger("room_routes")


@router.get("")
def list_rooms(
    room_type: Optional[RoomType] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    room_service: RoomService = Depends(get_room_service),
):
    rooms = room_service.list_rooms(db, room_type=room_type, skip=skip, limit=limit)
    return data_response([RoomResponse.model_validate(room) for room in rooms])


@router.get("/available")
def find_available_rooms(
    check_in: date,
    check_out: date,
    guest_count: int = Query(1, ge=1),
    room_type: Optional[RoomType] = None,
    db: Session = Depends(get_db),
    room_service: RoomService = Depends(get_room_service),
):
    try:
        rooms = room_service.find_available_rooms(
            db, to_utc_naive(check_in), to_utc_naive(check_out), guest_count, room_type
        )
        return data_response([RoomResponse.model_validate(room) for room in rooms])
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to search available rooms")
        return internal_server_error()


@router.get("/stats")
def get_room_stats(
    db: Session = Depends(get_db),
    actor: Actor = Depends(staff_required),
    room_service: RoomService = Depends(get_room_service),
):
    return data_response(room_service.get_room_stats(db))


@router.get("/{room_id}")
def get_room(
    room_id: int,
    db: Session = Depends(get_db),
    room_service: RoomService = Depends(get_room_service),
):
    try:
        return data_response(RoomResponse.model_validate(room_service.get_or_raise(db, room_id)))
    except BookingEngineError as e:
        return domain_error_response(e)


@router.post("", status_code=201)
def create_room(
    room_in: RoomCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    room_service: RoomService = Depends(get_room_service),
):
    try:
        room = room_service.create_room(db, actor, room_in)
        return created_response(RoomResponse.model_validate(room))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to create room")
        return internal_server_error()


@router.patch("/{room_id}")
def update_room(
    room_id: int,
    room_in: RoomUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    room_service: RoomService = Depends(get_room_service),
):
    try:
        room = room_service.update_room(db, actor, room_id, room_in)
        return data_response(RoomResponse.model_validate(room))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to update room %s", room_id)
        return internal_server_error()


@router.delete("/{room_id}")
def deactivate_room(
    room_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    room_service: RoomService = Depends(get_room_service),
):
    try:
        room = room_service.deactivate_room(db, actor, room_id)
        return data_response(RoomResponse.model_validate(room))
    except BookingEngineError as e:
        return domain_error_response(e)
    except Exception:
        logger.exception("Failed to deactivate room %s", room_id)
        return internal_server_error()
