"""Celery tasks wrapping the reconciliation sweeps."""

from typing import Optional

from celery import shared_task

from .database import SessionLocal
from .jobs import SweepResult, run_sweep
from .service import BookingService

_service: Optional[BookingService] = None


def get_service() -> BookingService:
    global _service
    if _service is None:
        _service = BookingService(SessionLocal)
    return _service


@shared_task(name="bookings.release_unchecked_bookings")
def release_unchecked_bookings() -> Optional[SweepResult]:
    return run_sweep("auto-release", get_service())


@shared_task(name="bookings.send_check_in_reminders")
def send_check_in_reminders() -> Optional[SweepResult]:
    return run_sweep("check-in-reminder", get_service())


@shared_task(name="bookings.cancel_stale_pending")
def cancel_stale_pending() -> Optional[SweepResult]:
    return run_sweep("stale-pending", get_service())
