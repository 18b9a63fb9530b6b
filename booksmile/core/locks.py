from contextlib import contextmanager
from datetime import date
import logging

from redis.exceptions import LockError

from .config import settings
from .exceptions import SlotConflictError, OverlapError

logger = logging.getLogger(__name__)


def booking_lock_name(dentist_id: int, day: date) -> str:
    return f"booking:{dentist_id}:{day.isoformat()}"


def availability_lock_name(dentist_id: int) -> str:
    return f"availability:{dentist_id}"


@contextmanager
def booking_lock(redis_client, dentist_id: int, day: date):
    """Serialize check-then-insert for one dentist's calendar day."""
    name = booking_lock_name(dentist_id, day)
    lock = redis_client.lock(
        name,
        timeout=settings.BOOKING_LOCK_TTL_SECONDS,
        blocking_timeout=settings.BOOKING_LOCK_TIMEOUT_SECONDS,
    )
    try:
        with lock:
            yield
    except LockError as exc:
        logger.warning(f"Timed out waiting for booking lock {name}")
        raise SlotConflictError(
            "Schedule busy",
            "Another booking for this dentist and date is in progress, please retry",
        ) from exc


@contextmanager
def availability_lock(redis_client, dentist_id: int):
    """Serialize mutations of one dentist's availability rule set."""
    name = availability_lock_name(dentist_id)
    lock = redis_client.lock(
        name,
        timeout=settings.BOOKING_LOCK_TTL_SECONDS,
        blocking_timeout=settings.BOOKING_LOCK_TIMEOUT_SECONDS,
    )
    try:
        with lock:
            yield
    except LockError as exc:
        logger.warning(f"Timed out waiting for availability lock {name}")
        raise OverlapError(
            "Schedule busy",
            "Another availability change for this dentist is in progress, please retry",
        ) from exc
