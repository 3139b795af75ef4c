import os
import sys
from datetime import date, datetime, timedelta

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest

from booking_engine.calendar_policy import CalendarPolicy
from booking_engine.config import EngineSettings
from booking_engine.conflicts import overlaps
from booking_engine.errors import InvalidInput, NoSlotsFound
from booking_engine.models import Booking, BookingStatus
from booking_engine.suggester import SlotSuggester, ceil_to_hour

SETTINGS = EngineSettings(holidays=frozenset({date(2025, 6, 3)}))
IST = SETTINGS.tz
policy = CalendarPolicy(SETTINGS)
suggester = SlotSuggester(policy)


def ist(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 6, day, hour, minute, tzinfo=IST)


def approved(start: datetime, end: datetime) -> Booking:
    return Booking(resource_id=1, user_id="u", start_time=start, end_time=end, status=BookingStatus.APPROVED)


def test_conflicting_request_gets_next_free_hour():
    taken = [approved(ist(2, 10), ist(2, 12))]
    slots = suggester.suggest(taken, ist(2, 10, 30), timedelta(hours=1), 4)
    assert slots[0] == ist(2, 12)
    assert slots == [ist(2, 12), ist(2, 13), ist(2, 14), ist(2, 15)]


def test_suggestions_respect_policy_and_never_overlap():
    taken = [
        approved(ist(2, 9), ist(2, 11)),
        approved(ist(2, 13), ist(2, 14)),
        approved(ist(2, 15), ist(2, 17)),
    ]
    slots = suggester.suggest(taken, ist(2, 9), timedelta(hours=2), 4)

    assert slots == sorted(set(slots))
    for slot in slots:
        end = slot + timedelta(hours=2)
        assert policy.permits(slot, end)
        assert slot.minute == 0
        assert not any(overlaps(slot, end, b.start_time, b.end_time) for b in taken)


def test_policy_failures_jump_to_next_working_day():
    # Monday afternoon is full, Tuesday is a holiday
    taken = [approved(ist(2, 9), ist(2, 17))]
    slots = suggester.suggest(taken, ist(2, 14), timedelta(hours=3), 2)
    assert slots == [ist(4, 9), ist(4, 10)]


def test_friday_evening_rolls_over_the_weekend():
    slots = suggester.suggest([], ist(6, 16, 30), timedelta(hours=1), 1)
    assert slots == [ist(9, 9)]


def test_no_slots_within_horizon():
    narrow = SlotSuggester(policy, horizon=timedelta(days=1))
    taken = [approved(ist(5, 9), ist(5, 17)), approved(ist(6, 9), ist(6, 17))]
    with pytest.raises(NoSlotsFound):
        narrow.suggest(taken, ist(5, 9), timedelta(hours=1), 4)


def test_limit_and_duration_must_be_positive():
    with pytest.raises(InvalidInput):
        suggester.suggest([], ist(2, 9), timedelta(0), 4)
    with pytest.raises(InvalidInput):
        suggester.suggest([], ist(2, 9), timedelta(hours=1), 0)


def test_ceil_to_hour():
    assert ceil_to_hour(ist(2, 10)) == ist(2, 10)
    assert ceil_to_hour(ist(2, 10, 1)) == ist(2, 11)
