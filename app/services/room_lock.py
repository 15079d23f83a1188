import threading
from contextlib import contextmanager
from typing import Dict, Optional

from config import ROOM_LOCK_TIMEOUT_SECONDS
from errors import BookingConflict
from utils.logger import get_logger

logger = get_logger("room_lock")


class RoomLockManager:
    """
    Advisory per-room locks for the availability check + write sections.

    The database row lock taken inside the section covers multi-process
    deployments; this lock gives a bounded wait inside one process and
    serializes storages without row locking (SQLite).
    """

    def __init__(self, timeout: float = ROOM_LOCK_TIMEOUT_SECONDS):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def _lock_for(self, room_id: int) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(room_id, threading.Lock())

    @contextmanager
    def hold(self, room_id: int, timeout: Optional[float] = None):
        wait = self.timeout if timeout is None else timeout
        lock = self._lock_for(room_id)
        if not lock.acquire(timeout=wait):
            logger.warning("Timed out after %ss waiting for room %s", wait, room_id)
            raise BookingConflict(
                "The room is being booked by another request, please retry.",
                {"room_id": room_id, "timeout_seconds": wait},
            )
        try:
            yield
        finally:
            lock.release()


room_locks = RoomLockManager()
