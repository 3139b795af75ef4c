import os
import sys
from datetime import date, datetime, timedelta

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest

from booking_engine.config import (
    DEFAULT_HOLIDAYS,
    IST_FALLBACK,
    EngineSettings,
    JobSchedule,
    load_settings,
    load_timezone,
    parse_holidays,
)

ENV_VARS = (
    "ORG_TIMEZONE",
    "WORKDAY_START_HOUR",
    "WORKDAY_END_HOUR",
    "HOLIDAYS",
    "CHECK_IN_GRACE_MINUTES",
    "SUGGESTION_LIMIT",
    "AUTO_RELEASE_MINUTE",
    "JOBS_BUSINESS_HOURS_ONLY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = load_settings()
    assert settings.work_start_hour == 9
    assert settings.work_end_hour == 17
    assert settings.holidays == DEFAULT_HOLIDAYS
    assert settings.check_in_grace == timedelta(minutes=15)
    assert settings.suggestion_horizon == timedelta(days=7)
    assert settings.suggestion_limit == 4
    assert settings.auto_release.minute == 16
    assert settings.check_in_reminder.minute == 10
    assert settings.stale_pending.business_hours_only is True
    assert datetime(2025, 6, 2, tzinfo=settings.tz).utcoffset() == timedelta(hours=5, minutes=30)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("WORKDAY_START_HOUR", "8")
    monkeypatch.setenv("WORKDAY_END_HOUR", "18")
    monkeypatch.setenv("HOLIDAYS", "2025-06-04, 2025-12-25")
    monkeypatch.setenv("CHECK_IN_GRACE_MINUTES", "10")
    monkeypatch.setenv("AUTO_RELEASE_MINUTE", "18")
    monkeypatch.setenv("JOBS_BUSINESS_HOURS_ONLY", "false")

    settings = load_settings()
    assert (settings.work_start_hour, settings.work_end_hour) == (8, 18)
    assert settings.holidays == {date(2025, 6, 4), date(2025, 12, 25)}
    assert settings.check_in_grace == timedelta(minutes=10)
    assert settings.auto_release == JobSchedule(minute=18, business_hours_only=False)


def test_empty_holiday_list_means_no_holidays():
    assert parse_holidays("") == frozenset()


def test_unknown_zone_falls_back_to_ist():
    assert load_timezone("Mars/Olympus_Mons") is IST_FALLBACK


def test_invalid_settings_are_rejected():
    with pytest.raises(ValueError):
        EngineSettings(work_start_hour=17, work_end_hour=9)
    with pytest.raises(ValueError):
        JobSchedule(minute=60)
