"""
Celery application and beat schedule for the reconciliation sweeps.

Run the worker with the scheduler embedded::

    celery -A booking_engine.celery_app worker -B --loglevel=info

or run ``celery -A booking_engine.celery_app beat`` next to a plain worker.
"""

import os
from typing import Optional

from celery import Celery
from celery.schedules import crontab

from .config import EngineSettings, JobSchedule, load_settings
from .jobs import SWEEPS

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)


def sweep_crontab(schedule: JobSchedule, settings: EngineSettings) -> crontab:
    """
    Hourly crontab firing at ``schedule.minute``.

    Business-hours sweeps only fire on weekdays inside the working window;
    the crontab is evaluated in ``app.conf.timezone``, which is the
    organisation zone.
    """
    if schedule.business_hours_only:
        return crontab(
            minute=schedule.minute,
            hour=f"{settings.work_start_hour}-{settings.work_end_hour - 1}",
            day_of_week="mon-fri",
        )
    return crontab(minute=schedule.minute)


def build_beat_schedule(settings: EngineSettings) -> dict:
    return {
        name: {
            "task": sweep.task_name,
            "schedule": sweep_crontab(getattr(settings, sweep.schedule_setting), settings),
        }
        for name, sweep in SWEEPS.items()
    }


def make_celery(settings: Optional[EngineSettings] = None) -> Celery:
    settings = settings or load_settings()
    celery = Celery(
        "resource_allocator",
        broker=CELERY_BROKER_URL,
        backend=CELERY_RESULT_BACKEND,
        include=["booking_engine.tasks"],
    )
    celery.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        enable_utc=True,
        timezone=settings.timezone_name,
        task_track_started=True,
    )
    celery.conf.beat_schedule = build_beat_schedule(settings)
    return celery


app = make_celery()
