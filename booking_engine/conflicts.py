"""
Interval overlap detection.

Bookings occupy half-open intervals ``[start, end)``. Two intervals overlap
iff each one starts before the other ends, so a booking ending at 11:00
and another starting at 11:00 do not collide.
"""

from datetime import datetime

from sqlalchemy import and_

from .models import Booking


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """
    Return True if ``[a_start, a_end)`` and ``[b_start, b_end)`` intersect.

    Parameters
    ----------
    a_start, a_end : datetime
        First interval.
    b_start, b_end : datetime
        Second interval.

    Returns
    -------
    bool
        Whether the intervals share at least one instant.
    """
    return a_start < b_end and b_start < a_end


def overlap_clause(start: datetime, end: datetime):
    """SQL form of ``overlaps`` against the ``Booking`` interval columns."""
    return and_(Booking.start_time < end, Booking.end_time > start)
