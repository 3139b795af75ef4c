from datetime import datetime, tzinfo
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .clock import to_zone
from .models import Booking, BookingStatus


class BookingBase(BaseModel):
    """
    Base schema for booking time and resource information.

    Shared fields used across booking create and read operations.
    """

    resource_id: int = Field(..., ge=1)
    start_time: datetime = Field(...)
    end_time: datetime = Field(...)


class BookingCreate(BookingBase):
    """
    Schema for requesting a new booking.

    The owner is never part of the payload; it comes from the caller's
    identity.
    """

    purpose: str = Field(..., max_length=500)

    @field_validator("purpose")
    @classmethod
    def strip_purpose(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("purpose must not be blank")
        return value


class BookingStatusUpdate(BaseModel):
    """
    Admin decision on a pending booking.

    Only ``approved`` and ``rejected`` are decisions an admin can take.
    """

    status: BookingStatus
    rejection_reason: Optional[str] = Field(default=None, max_length=500)


class BookingRead(BookingBase):
    """
    Snapshot of a booking handed back to callers and notifiers.

    Timestamps are expressed in the organisation zone.
    """

    id: int
    user_id: str
    purpose: str = ""
    status: BookingStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_booking(cls, booking: Booking, tz: tzinfo) -> "BookingRead":
        view = cls.model_validate(booking)
        updates = {}
        for name in ("start_time", "end_time", "approved_at", "checked_in_at", "created_at", "updated_at"):
            value = getattr(view, name)
            if value is not None:
                updates[name] = to_zone(value, tz)
        return view.model_copy(update=updates)


class ApprovalResult(BaseModel):
    """Outcome of an approval: the approved booking and the pending requests it displaced."""

    approved: BookingRead
    rejected: List[BookingRead] = Field(default_factory=list)


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class BookingPage(BaseModel):
    data: List[BookingRead]
    meta: PageMeta


class SlotSuggestions(BaseModel):
    resource_id: int
    requested_start: datetime
    duration_hours: int
    suggestions: List[datetime]
