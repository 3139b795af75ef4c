import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from .calendar_policy import ONE_HOUR, CalendarPolicy
from .errors import InvalidInput, NoSlotsFound
from .models import Booking

logger = logging.getLogger(__name__)


def ceil_to_hour(value: datetime) -> datetime:
    """Round ``value`` up to the next whole hour (unchanged if already aligned)."""
    floor = value.replace(minute=0, second=0, microsecond=0)
    return floor if floor == value else floor + ONE_HOUR


class SlotSuggester:
    """
    Greedy forward search for free start times on one resource.

    The search walks a cursor forward from the desired start. Whenever the
    cursor breaks the calendar policy it jumps to the next day's opening;
    whenever it collides with an approved booking it jumps to that
    booking's end. Free positions are collected one hour apart until
    ``limit`` are found or the horizon is passed.
    """

    def __init__(self, policy: CalendarPolicy, horizon: Optional[timedelta] = None):
        self.policy = policy
        self.horizon = horizon if horizon is not None else policy.settings.suggestion_horizon

    def suggest(
        self,
        approved: Sequence[Booking],
        desired_start: datetime,
        duration: timedelta,
        limit: int,
    ) -> List[datetime]:
        """
        Compute alternative start times against a snapshot of approved bookings.

        Parameters
        ----------
        approved : Sequence[Booking]
            Approved bookings of the resource ending after ``desired_start``,
            ordered by ``start_time`` ascending.
        desired_start : datetime
            Start the caller originally asked for.
        duration : timedelta
            Length of the requested booking.
        limit : int
            Maximum number of suggestions.

        Returns
        -------
        List[datetime]
            Strictly increasing start times in the organisation zone.

        Raises
        ------
        InvalidInput
            If ``duration`` or ``limit`` is not positive.
        NoSlotsFound
            If the horizon is exhausted without a single free slot.
        """
        if duration <= timedelta(0):
            raise InvalidInput("duration must be positive")
        if limit < 1:
            raise InvalidInput("limit must be at least 1")

        desired_start = self.policy.localize(desired_start)
        horizon = desired_start + self.horizon
        candidate = ceil_to_hour(desired_start)

        suggestions: List[datetime] = []
        idx = 0
        total = len(approved)

        while len(suggestions) < limit and candidate <= horizon:
            if not self.policy.permits(candidate, candidate + duration):
                candidate = self.policy.next_opening(candidate)
                continue

            while idx < total and approved[idx].end_time <= candidate:
                idx += 1

            if idx < total and approved[idx].start_time < candidate + duration:
                candidate = ceil_to_hour(self.policy.localize(approved[idx].end_time))
                continue

            suggestions.append(candidate)
            candidate = candidate + ONE_HOUR

        if not suggestions:
            raise NoSlotsFound(
                f"no slots available in next {self.horizon.days} days"
            )
        logger.debug(
            "Suggested %d slot(s) from %s for duration %s",
            len(suggestions),
            desired_start.isoformat(),
            duration,
        )
        return suggestions
