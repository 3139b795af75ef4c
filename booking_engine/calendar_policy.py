from datetime import date, datetime, timedelta, tzinfo
from typing import AbstractSet, Tuple

from .clock import to_zone
from .config import EngineSettings
from .errors import InvalidInput, PolicyViolation

ONE_HOUR = timedelta(hours=1)


def ensure_time_valid(start_time: datetime, end_time: datetime) -> None:
    """
    Validate that a time range is well-formed.

    Raises
    ------
    InvalidInput
        If ``end_time`` is not strictly after ``start_time``.
    """
    if end_time <= start_time:
        raise InvalidInput("end time must be after start time")


def is_allowed_date(day: date, holidays: AbstractSet[date]) -> None:
    """
    Check that ``day`` is a working day.

    Raises
    ------
    PolicyViolation
        On Saturdays, Sundays and configured holidays.
    """
    if day.weekday() >= 5:
        raise PolicyViolation("bookings are not allowed on weekends")
    if day in holidays:
        raise PolicyViolation("bookings are not allowed on public holidays")


def is_working_window(start: datetime, end: datetime, open_hour: int, close_hour: int) -> None:
    """
    Check that ``[start, end)`` sits inside the working window of its day.

    Both timestamps must already be in the organisation zone. A booking
    may start from ``open_hour``:00 up to (excluding) ``close_hour``:00 and
    must end no later than ``close_hour``:00:00 of the same day.

    Raises
    ------
    PolicyViolation
        If the interval leaves the working window.
    """
    if start.hour < open_hour or start.hour >= close_hour:
        raise PolicyViolation(
            f"start time must be between {open_hour:02d}:00 and {close_hour:02d}:00"
        )
    closing = start.replace(hour=close_hour % 24, minute=0, second=0, microsecond=0)
    if close_hour == 24:
        closing = closing + timedelta(days=1)
    if end > closing:
        raise PolicyViolation(
            f"end time must be between {open_hour:02d}:00 and {close_hour:02d}:00"
        )


def is_hour_aligned(start: datetime, end: datetime) -> None:
    """
    Check whole-hour granularity.

    Raises
    ------
    PolicyViolation
        If ``start`` is not at the top of an hour or the duration is not a
        positive multiple of one hour.
    """
    if start.minute or start.second or start.microsecond:
        raise PolicyViolation(
            "bookings must start exactly at the top of the hour (e.g. 10:00:00)"
        )
    duration = end - start
    if duration <= timedelta(0) or duration % ONE_HOUR:
        raise PolicyViolation("booking duration must be multiples of 1 hour")


class CalendarPolicy:
    """
    Organisation calendar rules bound to one set of settings.

    Every check converts its input to the organisation zone first, so the
    caller's zone never influences hour or weekday comparisons.
    """

    def __init__(self, settings: EngineSettings):
        self.settings = settings
        self.tz: tzinfo = settings.tz

    def localize(self, value: datetime) -> datetime:
        return to_zone(value, self.tz)

    def check_date(self, value: datetime) -> None:
        is_allowed_date(self.localize(value).date(), self.settings.holidays)

    def check_window(self, start: datetime, end: datetime) -> Tuple[datetime, datetime]:
        """
        Apply the working-hours and working-day rules.

        Returns
        -------
        Tuple[datetime, datetime]
            ``start`` and ``end`` normalised to the organisation zone.
        """
        start, end = self.localize(start), self.localize(end)
        ensure_time_valid(start, end)
        is_working_window(start, end, self.settings.work_start_hour, self.settings.work_end_hour)
        is_allowed_date(start.date(), self.settings.holidays)
        return start, end

    def check_alignment(self, start: datetime, end: datetime) -> None:
        is_hour_aligned(self.localize(start), self.localize(end))

    def check_interval(self, start: datetime, end: datetime) -> Tuple[datetime, datetime]:
        """Run every calendar rule; the full contract for a bookable interval."""
        start, end = self.check_window(start, end)
        is_hour_aligned(start, end)
        return start, end

    def is_working_day(self, value: datetime) -> bool:
        try:
            self.check_date(value)
        except PolicyViolation:
            return False
        return True

    def permits(self, start: datetime, end: datetime) -> bool:
        try:
            self.check_window(start, end)
        except (PolicyViolation, InvalidInput):
            return False
        return True

    def next_opening(self, value: datetime) -> datetime:
        """Opening time of the calendar day after ``value``."""
        following = self.localize(value) + timedelta(days=1)
        return following.replace(
            hour=self.settings.work_start_hour, minute=0, second=0, microsecond=0
        )
