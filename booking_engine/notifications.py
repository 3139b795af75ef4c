import logging
from enum import Enum as PyEnum
from typing import Callable, Dict, Optional, Tuple

from .schemas import BookingRead

logger = logging.getLogger(__name__)

DISPLAY_FORMAT = "%a, %d %b %Y %H:%M"


class NotificationEvent(str, PyEnum):
    BOOKING_CREATED = "booking_created"
    BOOKING_APPROVED = "booking_approved"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_REJECTED_CONFLICT = "booking_rejected_conflict"
    BOOKING_CANCELLED = "booking_cancelled"
    CHECK_IN_REMINDER = "check_in_reminder"


SUBJECTS: Dict[NotificationEvent, str] = {
    NotificationEvent.BOOKING_CREATED: "Booking Summary",
    NotificationEvent.BOOKING_APPROVED: "Resource Approved!",
    NotificationEvent.BOOKING_REJECTED: "Resource Rejected!",
    NotificationEvent.BOOKING_REJECTED_CONFLICT: "Booking Rejected due to Conflict",
    NotificationEvent.BOOKING_CANCELLED: "Resource Cancelled!",
    NotificationEvent.CHECK_IN_REMINDER: "Reminder: Check-in to your Booking!",
}

INTROS: Dict[NotificationEvent, str] = {
    NotificationEvent.BOOKING_CREATED: "Thank you for booking a resource, here is your summary:",
    NotificationEvent.BOOKING_APPROVED: "Your booking has been approved!",
    NotificationEvent.BOOKING_REJECTED: "Your booking has been rejected!",
    NotificationEvent.BOOKING_REJECTED_CONFLICT: (
        "Your booking has been rejected because the slot was approved for another request."
    ),
    NotificationEvent.BOOKING_CANCELLED: "Your booking has been cancelled!",
    NotificationEvent.CHECK_IN_REMINDER: (
        "Your booking has started. Please check in soon to avoid auto-release!"
    ),
}


def render_message(event: NotificationEvent, booking: BookingRead) -> Tuple[str, str]:
    """
    Build the subject and plain-text body for a booking notification.

    Returns
    -------
    Tuple[str, str]
        ``(subject, body)``.
    """
    lines = [
        INTROS[event],
        "",
        f"Booking ID: {booking.id}",
        f"Resource: {booking.resource_id}",
        f"Start Time: {booking.start_time.strftime(DISPLAY_FORMAT)}",
        f"End Time: {booking.end_time.strftime(DISPLAY_FORMAT)}",
        f"Status: {booking.status.value}",
    ]
    if booking.rejection_reason and event in (
        NotificationEvent.BOOKING_REJECTED,
        NotificationEvent.BOOKING_REJECTED_CONFLICT,
    ):
        lines.append(f"Reason: {booking.rejection_reason}")
    return SUBJECTS[event], "\n".join(lines)


class Notifier:
    """
    Delivery collaborator (email or otherwise).

    Implementations may raise; the dispatcher treats every delivery as
    best effort.
    """

    def notify(self, event: NotificationEvent, booking: BookingRead, recipient: str) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Writes notifications to the log instead of delivering them."""

    def notify(self, event: NotificationEvent, booking: BookingRead, recipient: str) -> None:
        subject, _ = render_message(event, booking)
        logger.info("Notification %s for booking %s to %s: %s", event.value, booking.id, recipient, subject)


# user_id -> delivery address; None when the user cannot be reached
RecipientResolver = Callable[[str], Optional[str]]


class NotificationDispatcher:
    """
    Fire-and-forget bridge between engine events and a ``Notifier``.

    Failures are logged and swallowed so they can never roll back or
    block the state change that triggered them.
    """

    def __init__(self, notifier: Optional[Notifier] = None, resolve_recipient: Optional[RecipientResolver] = None):
        self.notifier = notifier or LoggingNotifier()
        self.resolve_recipient = resolve_recipient or (lambda user_id: user_id)

    def dispatch(self, event: NotificationEvent, booking: BookingRead) -> bool:
        try:
            recipient = self.resolve_recipient(booking.user_id)
            if not recipient:
                logger.warning("No recipient for user %s; skipping %s", booking.user_id, event.value)
                return False
            self.notifier.notify(event, booking, recipient)
        except Exception:
            logger.error(
                "Failed to deliver %s for booking %s", event.value, booking.id, exc_info=True
            )
            return False
        return True
