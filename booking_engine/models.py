from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
)

from .database import Base
from .errors import InvalidInput


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timestamp column stored as naive UTC and loaded as aware UTC.

    Naive values handed to the column are rejected: every timestamp must
    be zone-normalised before it reaches the store.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires timezone-aware datetimes")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return value.replace(tzinfo=timezone.utc)


class BookingStatus(str, PyEnum):
    """
    Enumeration of booking statuses.

    Values
    ------
    pending
        Requested by a user, awaiting an admin decision.
    approved
        Holds the resource for its interval.
    rejected
        Declined by an admin or by a competing approval.
    cancelled
        Withdrawn by the owner or abandoned while still pending.
    released
        Approved but never checked into; the slot was freed.
    utilized
        Checked into within the grace window.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    RELEASED = "released"
    UTILIZED = "utilized"

    @classmethod
    def parse(cls, value) -> "BookingStatus":
        """Coerce a raw value, rejecting anything outside the enum."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidInput(f"unknown booking status: {value!r}")


class Resource(Base):
    """
    A bookable unit (room, equipment).

    Only ``id`` and ``active`` matter to the engine; everything else about
    a resource is managed elsewhere.
    """

    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    requires_approval = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)


class Booking(Base):
    """
    SQLAlchemy model representing a resource reservation.

    Attributes
    ----------
    id : int
        Primary key.
    resource_id : int
        Booked resource.
    user_id : str
        Opaque identifier of the owning user.
    start_time, end_time : datetime
        Half-open reserved interval ``[start_time, end_time)``.
    purpose : str
        Free-text reason supplied by the requester.
    status : BookingStatus
        Current lifecycle state.
    approved_by, approved_at
        Admin decision stamp, set when the booking leaves ``pending``
        through approval or rejection.
    rejection_reason : str
        Why the booking was rejected, released or auto-cancelled.
    checked_in_at : datetime
        Set once, on check-in.
    """

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    purpose = Column(Text, nullable=False, default="")
    status = Column(
        Enum(
            BookingStatus,
            native_enum=False,
            length=16,
            validate_strings=True,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=BookingStatus.PENDING,
    )

    approved_by = Column(String(64), nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    checked_in_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_booking_interval"),
        Index("ix_bookings_resource_status_start", "resource_id", "status", "start_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking id={self.id} resource={self.resource_id} "
            f"status={self.status} {self.start_time}..{self.end_time}>"
        )
