import logging
from typing import Callable

from .errors import Conflict
from .lifecycle import CONFLICT_REJECTION_REASON, Action, apply_transition
from .notifications import NotificationEvent
from .schemas import ApprovalResult, BookingRead
from .unit_of_work import SqlAlchemyUnitOfWork

logger = logging.getLogger(__name__)


class ApprovalTransaction:
    """
    Approve one booking and reject every pending request it displaces.

    Both halves run in one unit of work: if anything fails, the target
    stays ``pending`` and no competitor is touched. Notifications for the
    approval and for each displaced request are queued on the unit of work
    and only leave after commit.

    Parameters
    ----------
    uow_factory : Callable[[], SqlAlchemyUnitOfWork]
        Builds a fresh unit of work per approval.
    clock
        Source of the approval timestamp.
    """

    def __init__(self, uow_factory: Callable[[], SqlAlchemyUnitOfWork], clock):
        self.uow_factory = uow_factory
        self.clock = clock

    def run(self, booking_id: int, approver_id: str) -> ApprovalResult:
        now = self.clock.now()
        tz = self.clock.tz
        with self.uow_factory() as uow:
            target = uow.bookings.get(booking_id, for_update=True)
            apply_transition(target, Action.APPROVE, now, actor=approver_id)
            if uow.bookings.has_approved_overlap(target.resource_id, target.start_time, target.end_time):
                raise Conflict("slot already allocated to another approved booking")
            uow.bookings.update_status(target, target.status)

            conflicts = uow.bookings.load_pending_conflicts(
                target.resource_id, target.start_time, target.end_time, exclude_id=target.id
            )
            self.reject_conflicts(uow, conflicts, approver_id, now)

            approved = BookingRead.from_booking(target, tz)
            rejected = [BookingRead.from_booking(b, tz) for b in conflicts]

            uow.collect(NotificationEvent.BOOKING_APPROVED, approved)
            for view in rejected:
                uow.collect(NotificationEvent.BOOKING_REJECTED_CONFLICT, view)

        logger.info(
            "Booking %s approved by %s; %d conflicting request(s) rejected",
            booking_id,
            approver_id,
            len(rejected),
        )
        return ApprovalResult(approved=approved, rejected=rejected)

    def reject_conflicts(self, uow: SqlAlchemyUnitOfWork, conflicts, approver_id: str, now) -> None:
        for booking in conflicts:
            apply_transition(
                booking,
                Action.REJECT,
                now,
                actor=approver_id,
                reason=CONFLICT_REJECTION_REASON,
            )
            uow.bookings.update_status(booking, booking.status)
