from datetime import datetime
from typing import List, Optional, Sequence


class BookingError(Exception):
    """
    Base class for every failure the booking engine reports to callers.

    Attributes
    ----------
    message : str
        Human-readable reason, safe to show to end users.
    status_code : int
        HTTP status a transport layer should map this error to.
    """

    status_code = 500
    kind = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class PolicyViolation(BookingError):
    """Outside working hours, weekend, holiday or not whole-hour aligned."""

    status_code = 400
    kind = "policy_violation"


class InvalidInput(BookingError):
    status_code = 400
    kind = "invalid_input"


class Conflict(BookingError):
    """
    The requested window collides with an approved booking.

    ``suggestions`` holds alternative start times (may be empty).
    """

    status_code = 409
    kind = "conflict"

    def __init__(self, message: str, suggestions: Optional[Sequence[datetime]] = None):
        super().__init__(message)
        self.suggestions: List[datetime] = list(suggestions or [])


class NotFound(BookingError):
    status_code = 404
    kind = "not_found"


class Unauthorized(BookingError):
    status_code = 403
    kind = "unauthorized"


class CheckInExpired(Unauthorized):
    kind = "check_in_expired"


class InvalidTransition(BookingError):
    """
    The booking is not in the state the requested action needs.

    ``required`` names the source state(s) the action accepts.
    """

    status_code = 409
    kind = "invalid_transition"

    def __init__(self, message: str, required: Sequence[str] = ()):
        super().__init__(message)
        self.required = tuple(required)


class NoSlotsFound(BookingError):
    status_code = 404
    kind = "no_slots_found"


class Internal(BookingError):
    status_code = 500
    kind = "internal"
