from typing import Callable, TypeVar

from errors import BookingEngineError
from utils.logger import get_logger

logger = get_logger("retry")

T = TypeVar("T")


def retry_once(operation: Callable[[], T]) -> T:
    """Run ``operation``, running it one more time if it fails with a retryable error"""
    try:
        return operation()
    except BookingEngineError as exc:
        if not exc.retryable:
            raise
        logger.info("Retrying once after %s: %s", exc.code, exc.details)
        return operation()
