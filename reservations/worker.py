"""Celery worker configuration and beat schedule.

Periodic work:
- Expiring unpaid reservations
- Starting and completing reservations as their windows pass
- Detecting no-shows
- Draining the side-effect outbox
"""

from celery import Celery
from celery.schedules import crontab

from reservations.config import settings

# Create Celery app
celery_app = Celery(
    "reservation_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["reservations.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="America/Sao_Paulo",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result backend settings
    result_expires=3600,

    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=3,

    # Beat schedule for periodic tasks
    beat_schedule={
        # Expire unpaid reservations past their deadline
        "sweep-expired-payments": {
            "task": "reservations.tasks.sweep_expired_payments",
            "schedule": crontab(minute=f"*/{settings.expiry_sweep_minutes}"),
        },
        # Start and complete reservations hourly
        "sweep-reservation-progress": {
            "task": "reservations.tasks.sweep_reservation_progress",
            "schedule": crontab(minute=0),
        },
        # Mark no-shows once a day
        "sweep-no-shows": {
            "task": "reservations.tasks.sweep_no_shows",
            "schedule": crontab(hour=settings.no_show_sweep_hour, minute=0),
        },
        # Dispatch payment links, vouchers, notifications and refunds
        "drain-outbox": {
            "task": "reservations.tasks.drain_outbox",
            "schedule": crontab(minute="*"),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
