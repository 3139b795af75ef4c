import threading
from datetime import datetime, timedelta, timezone, tzinfo


def to_zone(value: datetime, tz: tzinfo) -> datetime:
    """
    Normalise a timestamp into ``tz``.

    Naive datetimes are taken to already be wall-clock time in ``tz``;
    aware ones are converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


class Clock:
    """Single source of "now" for the engine and its sweeps."""

    def __init__(self, tz: tzinfo = timezone.utc):
        self.tz = tz

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock(Clock):
    """
    Manually driven clock for tests and replays.

    Parameters
    ----------
    start : datetime
        Initial instant; naive values are read as wall-clock time in ``tz``.
    tz : tzinfo
        Zone returned timestamps are expressed in.
    """

    def __init__(self, start: datetime, tz: tzinfo = timezone.utc):
        super().__init__(tz)
        self._lock = threading.Lock()
        self._now = to_zone(start, tz)

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = to_zone(value, self.tz)

    def advance(self, delta: timedelta) -> datetime:
        with self._lock:
            self._now = self._now + delta
            return self._now
