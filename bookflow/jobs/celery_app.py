"""Celery worker and beat wiring for the booking housekeeping jobs"""

from celery import Celery
from bookflow.config import settings

celery_app = Celery(
    "bookflow",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["bookflow.jobs.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    timezone="UTC",
    # Jobs are idempotent, so a lost worker may simply rerun them
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_time_limit=settings.job_time_limit_seconds,
    beat_schedule={
        "expire-booking-holds": {
            "task": "expire_booking_holds",
            "schedule": float(settings.hold_sweep_interval_seconds),
        },
        "send-reservation-reminders": {
            "task": "send_reservation_reminders",
            "schedule": float(settings.reminder_interval_seconds),
        },
    },
)
