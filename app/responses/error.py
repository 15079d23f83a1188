from fastapi import status
from .base import build_response

from errors import (
    BookingConflict,
    BookingEngineError,
    CapacityExceeded,
    DuplicateReference,
    GatewayError,
    GatewayUnreachable,
    NotFound,
    PermissionDenied,
    RoomInUse,
    RoomNumberTaken,
)

# Checked in order, the first matching class wins
DOMAIN_ERROR_STATUS = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (BookingConflict, status.HTTP_409_CONFLICT),
    (CapacityExceeded, status.HTTP_409_CONFLICT),
    (DuplicateReference, status.HTTP_409_CONFLICT),
    (RoomNumberTaken, status.HTTP_409_CONFLICT),
    (RoomInUse, status.HTTP_409_CONFLICT),
    (GatewayUnreachable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (GatewayError, status.HTTP_502_BAD_GATEWAY),
)


def bad_request_error(error: str = "Bad request"):
    return build_response(
        status.HTTP_400_BAD_REQUEST,
        "failure",
        error="bad_request",
        message=error,
    )


def internal_server_error(error: str = "Internal server error"):
    return build_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "failure",
        error="internal_server_error",
        message=error,
    )


def domain_error_status(exc: BookingEngineError) -> int:
    for error_class, status_code in DOMAIN_ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def domain_error_response(exc: BookingEngineError):
    return build_response(
        domain_error_status(exc),
        "failure",
        error=exc.code,
        message=exc.message,
        details=exc.details,
    )
