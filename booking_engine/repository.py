import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .conflicts import overlap_clause
from .errors import InvalidInput, NotFound
from .models import Booking, BookingStatus, Resource

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PageRequest:
    """Normalised pagination parameters (page 1-based, limit capped at 100)."""

    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @classmethod
    def of(cls, page: Optional[int] = None, limit: Optional[int] = None) -> "PageRequest":
        page = page if page and page >= 1 else 1
        limit = limit if limit and limit >= 1 else DEFAULT_PAGE_SIZE
        return cls(page=page, limit=min(limit, MAX_PAGE_SIZE))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def total_pages(self, total: int) -> int:
        return int(math.ceil(total / float(self.limit)))


class BookingRepository:
    """
    Persistence contract of the engine, implemented on a SQLAlchemy session.

    The repository never commits: transaction boundaries belong to the
    unit of work that owns the session.
    """

    FILTERABLE = ("resource_id", "user_id", "status")

    def __init__(self, session: Session):
        self.session = session

    # ---------- single rows ----------

    def get(self, booking_id: int, for_update: bool = False) -> Booking:
        q = self.session.query(Booking).filter(Booking.id == booking_id)
        if for_update:
            q = q.with_for_update()
        booking = q.first()
        if booking is None:
            raise NotFound("booking not found")
        return booking

    def get_resource(self, resource_id: int) -> Resource:
        resource = self.session.get(Resource, resource_id)
        if resource is None:
            raise NotFound("resource not found")
        return resource

    def insert(self, booking: Booking) -> Booking:
        self.session.add(booking)
        self.session.flush()
        return booking

    def update_status(self, booking: Booking, status: BookingStatus, **fields: Any) -> Booking:
        booking.status = status
        for name, value in fields.items():
            setattr(booking, name, value)
        self.session.flush()
        return booking

    # ---------- overlap queries ----------

    def has_approved_overlap(self, resource_id: int, start: datetime, end: datetime) -> bool:
        q = (
            self.session.query(Booking.id)
            .filter(Booking.resource_id == resource_id)
            .filter(Booking.status == BookingStatus.APPROVED)
            .filter(overlap_clause(start, end))
        )
        return self.session.query(q.exists()).scalar()

    def load_approved_bookings(self, resource_id: int, after: datetime) -> List[Booking]:
        """Approved bookings of a resource ending after ``after``, by start ascending."""
        return (
            self.session.query(Booking)
            .filter(Booking.resource_id == resource_id)
            .filter(Booking.status == BookingStatus.APPROVED)
            .filter(Booking.end_time > after)
            .order_by(Booking.start_time.asc())
            .all()
        )

    def load_pending_conflicts(
        self,
        resource_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> List[Booking]:
        """
        Pending bookings of a resource overlapping ``[start, end)``.

        Rows are locked (``SELECT ... FOR UPDATE``) on dialects that support
        it so a concurrent approval cannot decide them in parallel.
        """
        q = (
            self.session.query(Booking)
            .filter(Booking.resource_id == resource_id)
            .filter(Booking.status == BookingStatus.PENDING)
            .filter(overlap_clause(start, end))
        )
        if exclude_id is not None:
            q = q.filter(Booking.id != exclude_id)
        return q.order_by(Booking.id.asc()).with_for_update().all()

    # ---------- sweeps ----------

    def approved_starting_at(self, start: datetime) -> List[Booking]:
        return (
            self.session.query(Booking)
            .filter(Booking.status == BookingStatus.APPROVED)
            .filter(Booking.start_time == start)
            .order_by(Booking.id.asc())
            .all()
        )

    def bulk_update_status(
        self,
        current: BookingStatus,
        started_before: datetime,
        values: Dict[str, Any],
    ) -> int:
        """
        Move every ``current`` booking starting before ``started_before`` in one UPDATE.

        The status predicate is part of the statement, so rows changed by a
        concurrent writer in the meantime are left alone.

        Returns
        -------
        int
            Number of rows updated.
        """
        return (
            self.session.query(Booking)
            .filter(Booking.status == current)
            .filter(Booking.start_time < started_before)
            .update(values, synchronize_session=False)
        )

    # ---------- listings ----------

    def list_bookings(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page: Optional[PageRequest] = None,
        order_by_start: bool = False,
    ) -> Tuple[List[Booking], int]:
        page = page or PageRequest()
        q = self.session.query(Booking)
        for key, value in (filters or {}).items():
            if value is None:
                continue
            if key not in self.FILTERABLE:
                raise InvalidInput(f"unsupported filter: {key}")
            if key == "status":
                value = BookingStatus.parse(value)
            q = q.filter(getattr(Booking, key) == value)

        total = q.count()
        order = Booking.start_time.desc() if order_by_start else Booking.created_at.desc()
        rows = q.order_by(order, Booking.id.desc()).offset(page.offset).limit(page.limit).all()
        return rows, total
