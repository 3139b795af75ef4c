import os
from dataclasses import dataclass, field
from datetime import date, timedelta, timezone, tzinfo
from typing import FrozenSet, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "Asia/Kolkata"

# IST has no DST, so a fixed offset is a safe stand-in when tzdata is missing
IST_FALLBACK = timezone(timedelta(hours=5, minutes=30), "IST")

DEFAULT_HOLIDAYS = frozenset(
    {
        date(2026, 1, 26),  # Republic Day
        date(2026, 8, 15),  # Independence Day
        date(2026, 10, 2),  # Gandhi Jayanti
        date(2026, 12, 25),  # Christmas
    }
)


def load_timezone(name: str) -> tzinfo:
    """
    Resolve an IANA zone name, falling back to a fixed IST offset.

    Parameters
    ----------
    name : str
        Zone name such as ``Asia/Kolkata``.

    Returns
    -------
    tzinfo
        The resolved zone.
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return IST_FALLBACK


def parse_holidays(raw: Optional[str]) -> FrozenSet[date]:
    """
    Parse a comma-separated list of ISO dates (``2026-01-26,2026-08-15``).

    An unset variable yields the built-in holiday calendar; an empty string
    yields no holidays at all.
    """
    if raw is None:
        return DEFAULT_HOLIDAYS
    return frozenset(
        date.fromisoformat(part.strip()) for part in raw.split(",") if part.strip()
    )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class JobSchedule:
    """
    Cadence of one reconciliation sweep.

    The sweep fires once per hour at ``minute`` past the hour. When
    ``business_hours_only`` is set, ticks outside the working window or on
    non-working days are skipped.
    """

    minute: int = 0
    business_hours_only: bool = True

    def __post_init__(self):
        if not 0 <= self.minute < 60:
            raise ValueError("minute must be within 0-59")


@dataclass(frozen=True)
class EngineSettings:
    """
    Organisation policy and job cadence used by the booking engine.

    Attributes
    ----------
    timezone_name : str
        IANA name of the organisation's local zone.
    work_start_hour : int
        First hour a booking may start (inclusive).
    work_end_hour : int
        Closing hour; a booking must end at or before HH:00:00 of this hour.
    holidays : FrozenSet[date]
        Calendar dates on which bookings are not allowed.
    check_in_grace : timedelta
        How long after start a check-in is still accepted.
    suggestion_horizon : timedelta
        How far past the desired start the slot suggester searches.
    suggestion_limit : int
        Maximum number of alternative slots attached to a conflict.
    """

    timezone_name: str = DEFAULT_TIMEZONE
    work_start_hour: int = 9
    work_end_hour: int = 17
    holidays: FrozenSet[date] = DEFAULT_HOLIDAYS
    check_in_grace: timedelta = timedelta(minutes=15)
    suggestion_horizon: timedelta = timedelta(days=7)
    suggestion_limit: int = 4
    auto_release: JobSchedule = field(default_factory=lambda: JobSchedule(minute=16))
    check_in_reminder: JobSchedule = field(default_factory=lambda: JobSchedule(minute=10))
    stale_pending: JobSchedule = field(default_factory=lambda: JobSchedule(minute=0))

    def __post_init__(self):
        if not 0 <= self.work_start_hour < self.work_end_hour <= 24:
            raise ValueError("working hours must satisfy 0 <= start < end <= 24")
        if self.suggestion_limit < 1:
            raise ValueError("suggestion_limit must be at least 1")

    @property
    def tz(self) -> tzinfo:
        return load_timezone(self.timezone_name)


def load_settings() -> EngineSettings:
    """
    Build ``EngineSettings`` from environment variables.

    Returns
    -------
    EngineSettings
        Settings with every unset variable left at its default.
    """
    business_hours_only = _env_bool("JOBS_BUSINESS_HOURS_ONLY", True)
    return EngineSettings(
        timezone_name=os.getenv("ORG_TIMEZONE", DEFAULT_TIMEZONE),
        work_start_hour=int(os.getenv("WORKDAY_START_HOUR", "9")),
        work_end_hour=int(os.getenv("WORKDAY_END_HOUR", "17")),
        holidays=parse_holidays(os.getenv("HOLIDAYS")),
        check_in_grace=timedelta(minutes=int(os.getenv("CHECK_IN_GRACE_MINUTES", "15"))),
        suggestion_horizon=timedelta(days=int(os.getenv("SUGGESTION_HORIZON_DAYS", "7"))),
        suggestion_limit=int(os.getenv("SUGGESTION_LIMIT", "4")),
        auto_release=JobSchedule(
            minute=int(os.getenv("AUTO_RELEASE_MINUTE", "16")),
            business_hours_only=business_hours_only,
        ),
        check_in_reminder=JobSchedule(
            minute=int(os.getenv("CHECK_IN_REMINDER_MINUTE", "10")),
            business_hours_only=business_hours_only,
        ),
        stale_pending=JobSchedule(
            minute=int(os.getenv("STALE_PENDING_MINUTE", "0")),
            business_hours_only=business_hours_only,
        ),
    )
