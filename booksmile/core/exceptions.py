"""
Scheduling error taxonomy.

Every error here is recoverable and is reported to the caller as a 4xx
response carrying a machine-readable ``kind`` and a human-readable message.
"""
from typing import Optional

from fastapi import status


class BookingError(Exception):
    kind = "booking_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or message

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.message,
            "kind": self.kind,
            "message": self.detail,
        }


class InvalidRequestError(BookingError):
    """The request is well-formed but missing context the operation needs."""

    kind = "invalid_request"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidRangeError(BookingError):
    kind = "invalid_range"
    status_code = status.HTTP_400_BAD_REQUEST


class OverlapError(BookingError):
    kind = "overlap"
    status_code = status.HTTP_409_CONFLICT


class OutsideAvailabilityError(BookingError):
    kind = "outside_availability"
    status_code = status.HTTP_409_CONFLICT


class SlotConflictError(BookingError):
    kind = "slot_conflict"
    status_code = status.HTTP_409_CONFLICT


class InvalidTransitionError(BookingError):
    kind = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class TransitionNotPermittedError(InvalidTransitionError):
    """The transition exists but the acting role may not perform it."""

    kind = "transition_not_permitted"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(BookingError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
