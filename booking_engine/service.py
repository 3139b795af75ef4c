import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from .approval import ApprovalTransaction
from .calendar_policy import CalendarPolicy, ensure_time_valid
from .clock import Clock, SystemClock
from .config import EngineSettings, load_settings
from .errors import CheckInExpired, Conflict, InvalidInput, NoSlotsFound, Unauthorized
from .lifecycle import Action, apply_transition, require_transition
from .locks import ResourceLocks
from .models import Booking, BookingStatus
from .notifications import NotificationDispatcher, NotificationEvent
from .repository import PageRequest
from .schemas import (
    ApprovalResult,
    BookingCreate,
    BookingPage,
    BookingRead,
    BookingStatusUpdate,
    PageMeta,
)
from .suggester import SlotSuggester
from .unit_of_work import SqlAlchemyUnitOfWork

logger = logging.getLogger(__name__)

SLOT_FORMAT = "%a, %d %b %H:%M"

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Caller:
    """Already-authenticated identity of whoever invokes an operation."""

    user_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def format_conflict(suggestions: List[datetime]) -> str:
    message = "slot unavailable"
    if suggestions:
        slots = "\n".join(s.strftime(SLOT_FORMAT) for s in suggestions)
        message = f"{message}. Suggested slots: \n{slots}"
    return message


class BookingService:
    """
    Entry point of the booking engine.

    Every operation reconstructs its working set from the store inside its
    own unit of work; the service itself holds no mutable booking state.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory for SQLAlchemy sessions bound to the booking store.
    settings : EngineSettings, optional
        Calendar policy and cadence; read from the environment if omitted.
    clock : Clock, optional
        Source of "now"; defaults to the system clock in the organisation zone.
    dispatcher : NotificationDispatcher, optional
        Where post-commit notifications go; defaults to logging them.
    approval_isolation_level : str, optional
        Isolation level requested for the approval transaction.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        locks: Optional[ResourceLocks] = None,
        approval_isolation_level: Optional[str] = "SERIALIZABLE",
    ):
        self.session_factory = session_factory
        self.settings = settings or load_settings()
        self.policy = CalendarPolicy(self.settings)
        self.clock = clock or SystemClock(self.policy.tz)
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.locks = locks or ResourceLocks()
        self.suggester = SlotSuggester(self.policy)
        self.approval = ApprovalTransaction(
            lambda: self.unit_of_work(isolation_level=approval_isolation_level),
            self.clock,
        )

    @property
    def tz(self):
        return self.policy.tz

    def unit_of_work(self, isolation_level: Optional[str] = None) -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(self.session_factory, self.dispatcher, isolation_level=isolation_level)

    def view(self, booking: Booking) -> BookingRead:
        return BookingRead.from_booking(booking, self.tz)

    # ---------- creation ----------

    def create_booking(self, request: BookingCreate, caller: Caller) -> BookingRead:
        """
        Request a booking; it is stored as ``pending`` awaiting an admin.

        Checks run in this order: well-formed interval, future start,
        working window and working day, approved overlap (with suggested
        alternatives), whole-hour alignment.

        Raises
        ------
        InvalidInput
            Malformed interval, past start, or inactive resource.
        PolicyViolation
            Outside working hours, weekend, holiday, or not hour-aligned.
        Conflict
            An approved booking already holds part of the window;
            ``suggestions`` carries alternative start times.
        NotFound
            Unknown resource.
        """
        start = self.policy.localize(request.start_time)
        end = self.policy.localize(request.end_time)
        ensure_time_valid(start, end)
        if start <= self.clock.now():
            raise InvalidInput("start time must be in the future")
        start, end = self.policy.check_window(start, end)

        with self.locks.hold(request.resource_id):
            with self.unit_of_work() as uow:
                resource = uow.bookings.get_resource(request.resource_id)
                if not resource.active:
                    raise InvalidInput("resource is not available for booking")

                if uow.bookings.has_approved_overlap(resource.id, start, end):
                    suggestions = self._suggest(uow, resource.id, start, end - start)
                    logger.info(
                        "Booking request by %s on resource %s rejected: approved overlap",
                        caller.user_id,
                        resource.id,
                    )
                    raise Conflict(format_conflict(suggestions), suggestions)

                self.policy.check_alignment(start, end)

                booking = uow.bookings.insert(
                    Booking(
                        resource_id=resource.id,
                        user_id=caller.user_id,
                        start_time=start,
                        end_time=end,
                        purpose=request.purpose,
                        status=BookingStatus.PENDING,
                    )
                )
                view = self.view(booking)
                uow.collect(NotificationEvent.BOOKING_CREATED, view)

        logger.info("Booking %s created by %s on resource %s", view.id, caller.user_id, view.resource_id)
        return view

    def _suggest(self, uow: SqlAlchemyUnitOfWork, resource_id: int, start: datetime, duration: timedelta) -> List[datetime]:
        approved = uow.bookings.load_approved_bookings(resource_id, start)
        try:
            return self.suggester.suggest(approved, start, duration, self.settings.suggestion_limit)
        except NoSlotsFound:
            return []

    def suggest_slots(
        self,
        resource_id: int,
        desired_start: datetime,
        duration: timedelta,
        limit: Optional[int] = None,
    ) -> List[datetime]:
        """
        Alternative start times for ``duration`` on a resource.

        A ``desired_start`` already in the past searches from now instead,
        so every suggestion is still bookable.

        Raises
        ------
        InvalidInput
            If ``duration`` or an explicit ``limit`` is not positive.
        NoSlotsFound
            If nothing is free within the search horizon.
        """
        desired_start = max(self.policy.localize(desired_start), self.policy.localize(self.clock.now()))
        if limit is None:
            limit = self.settings.suggestion_limit
        with self.unit_of_work() as uow:
            uow.bookings.get_resource(resource_id)
            approved = uow.bookings.load_approved_bookings(resource_id, desired_start)
            return self.suggester.suggest(approved, desired_start, duration, limit)

    # ---------- admin decisions ----------

    def _require_admin(self, caller: Caller) -> None:
        if not caller.is_admin:
            raise Unauthorized("only admins can approve or reject bookings")

    def approve(self, booking_id: int, caller: Caller) -> ApprovalResult:
        self._require_admin(caller)
        return self.approval.run(booking_id, caller.user_id)

    def reject(self, booking_id: int, caller: Caller, reason: Optional[str] = None) -> BookingRead:
        self._require_admin(caller)
        now = self.clock.now()
        with self.unit_of_work() as uow:
            booking = uow.bookings.get(booking_id, for_update=True)
            apply_transition(booking, Action.REJECT, now, actor=caller.user_id, reason=(reason or "").strip() or None)
            uow.bookings.update_status(booking, booking.status)
            view = self.view(booking)
            uow.collect(NotificationEvent.BOOKING_REJECTED, view)
        logger.info("Booking %s rejected by %s", booking_id, caller.user_id)
        return view

    def update_status(self, booking_id: int, update: BookingStatusUpdate, caller: Caller) -> BookingRead:
        """
        Apply an admin decision carried by a status-update request.

        Raises
        ------
        InvalidInput
            If the requested status is neither ``approved`` nor ``rejected``.
        """
        status = BookingStatus.parse(update.status)
        if status is BookingStatus.APPROVED:
            return self.approve(booking_id, caller).approved
        if status is BookingStatus.REJECTED:
            return self.reject(booking_id, caller, update.rejection_reason)
        raise InvalidInput("invalid status transition")

    # ---------- owner actions ----------

    def cancel(self, booking_id: int, caller: Caller) -> BookingRead:
        now = self.clock.now()
        with self.unit_of_work() as uow:
            booking = uow.bookings.get(booking_id, for_update=True)
            if booking.user_id != caller.user_id:
                raise Unauthorized("you can only cancel your own bookings")
            apply_transition(booking, Action.CANCEL, now)
            uow.bookings.update_status(booking, booking.status)
            view = self.view(booking)
            uow.collect(NotificationEvent.BOOKING_CANCELLED, view)
        logger.info("Booking %s cancelled by owner %s", booking_id, caller.user_id)
        return view

    def check_in(self, booking_id: int, caller: Caller) -> BookingRead:
        """
        Mark an approved booking as utilized.

        Accepted from the start time through start time plus the grace
        window, both ends inclusive.

        Raises
        ------
        Unauthorized
            If the caller does not own the booking.
        InvalidTransition
            If the booking is not approved.
        InvalidInput
            Before the start time.
        CheckInExpired
            After the grace window.
        """
        now = self.clock.now()
        with self.unit_of_work() as uow:
            booking = uow.bookings.get(booking_id, for_update=True)
            if booking.user_id != caller.user_id:
                raise Unauthorized("you can only check in to your own bookings")
            require_transition(BookingStatus.parse(booking.status), Action.CHECK_IN)
            if now < booking.start_time:
                raise InvalidInput("check-in opens at the booking start time")
            if now > booking.start_time + self.settings.check_in_grace:
                raise CheckInExpired("check-in time expired")
            apply_transition(booking, Action.CHECK_IN, now)
            uow.bookings.update_status(booking, booking.status)
            view = self.view(booking)
        logger.info("Booking %s checked in by %s", booking_id, caller.user_id)
        return view

    # ---------- queries ----------

    def get_booking(self, booking_id: int, caller: Caller) -> BookingRead:
        with self.unit_of_work() as uow:
            booking = uow.bookings.get(booking_id)
            if not caller.is_admin and booking.user_id != caller.user_id:
                raise Unauthorized("you can only view your own bookings")
            return self.view(booking)

    def list_user_bookings(
        self,
        caller: Caller,
        status: Optional[str] = None,
        page: Optional[PageRequest] = None,
    ) -> BookingPage:
        return self._page({"user_id": caller.user_id, "status": status}, page, order_by_start=True)

    def list_bookings(
        self,
        caller: Caller,
        filters: Optional[Dict[str, Any]] = None,
        page: Optional[PageRequest] = None,
    ) -> BookingPage:
        if not caller.is_admin:
            raise Unauthorized("only admins can list all bookings")
        return self._page(filters or {}, page)

    def _page(self, filters: Dict[str, Any], page: Optional[PageRequest], order_by_start: bool = False) -> BookingPage:
        page = page or PageRequest()
        with self.unit_of_work() as uow:
            rows, total = uow.bookings.list_bookings(filters, page, order_by_start=order_by_start)
            data = [self.view(b) for b in rows]
        return BookingPage(
            data=data,
            meta=PageMeta(page=page.page, limit=page.limit, total=total, total_pages=page.total_pages(total)),
        )
