"""
Unit of Work

Wraps one SQLAlchemy session in one transaction and makes sure
notifications go out only after that transaction has committed.

Usage::

    with SqlAlchemyUnitOfWork(SessionLocal, dispatcher) as uow:
        booking = uow.bookings.get(booking_id, for_update=True)
        ...
        uow.collect(NotificationEvent.BOOKING_APPROVED, view)
    # committed here, then notifications are dispatched
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .errors import Internal
from .notifications import NotificationDispatcher, NotificationEvent
from .repository import BookingRepository
from .schemas import BookingRead

logger = logging.getLogger(__name__)


class SqlAlchemyUnitOfWork:
    """
    Transaction scope over a session factory.

    Clean exit commits; an exception rolls back and discards collected
    notifications. Store errors surface as ``Internal`` so callers never
    see driver-level detail.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        dispatcher: Optional[NotificationDispatcher] = None,
        isolation_level: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.isolation_level = isolation_level
        self._pending: List[Tuple[NotificationEvent, BookingRead]] = []
        self.session = None
        self.bookings: Optional[BookingRepository] = None

    def __enter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self.session_factory()
        if self.isolation_level:
            self.session.connection(execution_options={"isolation_level": self.isolation_level})
        self.bookings = BookingRepository(self.session)
        self._pending = []
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self.session.close()
        if exc_type is not None and issubclass(exc_type, SQLAlchemyError):
            logger.error("Store failure, transaction rolled back", exc_info=(exc_type, exc_val, exc_tb))
            raise Internal("internal system error") from exc_val
        if exc_type is None:
            self._publish()
        return False

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            self._pending.clear()
            logger.error("Commit failed, transaction rolled back", exc_info=True)
            raise Internal("internal system error") from exc

    def rollback(self) -> None:
        if self._pending:
            logger.warning("Rolling back transaction, discarding %d notification(s)", len(self._pending))
        self._pending.clear()
        self.session.rollback()

    def collect(self, event: NotificationEvent, booking: BookingRead) -> None:
        self._pending.append((event, booking))

    def _publish(self) -> None:
        events, self._pending = self._pending, []
        if self.dispatcher is None:
            return
        for event, booking in events:
            self.dispatcher.dispatch(event, booking)
