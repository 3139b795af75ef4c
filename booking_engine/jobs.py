"""
Reconciliation sweeps.

Each sweep is a stateless "scan + conditional update" against the store.
Sweeps are idempotent: running one twice, or twice at once, changes
nothing the first run did not already change, because the status
predicate is part of every UPDATE.

The sweeps take a ``BookingService`` so the clock stays injectable; the
Celery tasks in ``booking_engine.tasks`` call them through ``run_sweep``.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, NamedTuple, Optional

from .config import JobSchedule
from .lifecycle import Action, source_statuses, transition_values
from .notifications import NotificationEvent
from .service import BookingService

logger = logging.getLogger(__name__)

SweepResult = Dict[str, int]


def release_unchecked_bookings(service: BookingService) -> SweepResult:
    """
    Release approved bookings whose grace window elapsed without a check-in.

    Selects approved bookings with ``start_time < now - grace`` and moves
    them to ``released`` in a single bulk update.

    Returns
    -------
    dict
        ``{"released": <rows updated>}``
    """
    now = service.clock.now()
    cutoff = now - service.settings.check_in_grace
    (source,) = source_statuses(Action.RELEASE)
    with service.unit_of_work() as uow:
        released = uow.bookings.bulk_update_status(
            source, cutoff, transition_values(Action.RELEASE, now)
        )
    if released:
        logger.info("Auto-release: released %d booking(s) that started before %s", released, cutoff.isoformat())
    return {"released": released}


def send_check_in_reminders(service: BookingService) -> SweepResult:
    """
    Remind owners of approved bookings that started at the top of this hour.

    The hour is taken in the organisation zone, whatever zone the clock
    reports in. Read-only; statuses are not touched.

    Returns
    -------
    dict
        ``{"reminded": <reminders queued>}``
    """
    now = service.policy.localize(service.clock.now())
    hour_start = now.replace(minute=0, second=0, microsecond=0)
    with service.unit_of_work() as uow:
        bookings = uow.bookings.approved_starting_at(hour_start)
        logger.info(
            "Check-in reminder: looking for bookings at %s, found %d",
            hour_start.isoformat(),
            len(bookings),
        )
        for booking in bookings:
            uow.collect(NotificationEvent.CHECK_IN_REMINDER, service.view(booking))
    return {"reminded": len(bookings)}


def cancel_stale_pending(service: BookingService) -> SweepResult:
    """
    Cancel pending requests whose start time has already passed.

    Returns
    -------
    dict
        ``{"cancelled": <rows updated>}``
    """
    now = service.clock.now()
    (source,) = source_statuses(Action.EXPIRE)
    with service.unit_of_work() as uow:
        cancelled = uow.bookings.bulk_update_status(
            source, now, transition_values(Action.EXPIRE, now)
        )
    if cancelled:
        logger.info("Stale pending: cancelled %d undecided booking(s)", cancelled)
    return {"cancelled": cancelled}


class Sweep(NamedTuple):
    run: Callable[[BookingService], SweepResult]
    # attribute of EngineSettings holding the JobSchedule
    schedule_setting: str
    task_name: str


SWEEPS: Dict[str, Sweep] = {
    "auto-release": Sweep(release_unchecked_bookings, "auto_release", "bookings.release_unchecked_bookings"),
    "check-in-reminder": Sweep(send_check_in_reminders, "check_in_reminder", "bookings.send_check_in_reminders"),
    "stale-pending": Sweep(cancel_stale_pending, "stale_pending", "bookings.cancel_stale_pending"),
}


def schedule_for(service: BookingService, name: str) -> JobSchedule:
    return getattr(service.settings, SWEEPS[name].schedule_setting)


def run_sweep(name: str, service: BookingService, at: Optional[datetime] = None) -> Optional[SweepResult]:
    """
    Run one named sweep the way a scheduled firing does.

    Business-hours sweeps are skipped on weekends and holidays; the beat
    schedule already limits them to working hours on weekdays, but it
    has no notion of the holiday calendar. A failing sweep is logged and
    left for the next firing.

    Returns
    -------
    dict or None
        The sweep's counts, or ``None`` when skipped or failed.
    """
    sweep = SWEEPS[name]
    at = at or service.clock.now()
    if schedule_for(service, name).business_hours_only and not service.policy.is_working_day(at):
        day = service.policy.localize(at).date()
        logger.info("Reconciliation sweep %s skipped: %s is not a working day", name, day.isoformat())
        return None
    try:
        return sweep.run(service)
    except Exception:
        logger.error("Reconciliation sweep %s failed; will retry on the next firing", name, exc_info=True)
        return None
