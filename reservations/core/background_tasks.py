"""In-process scheduler for the time-driven work.

Development runs without a Celery beat; when
``settings.run_scheduler_in_process`` is set, the API process runs the
same passes itself, at the beat cadence, and drains the outbox on every
tick.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from reservations.config import settings
from reservations.database import get_session_factory, utcnow
from reservations.services.outbox_service import outbox_service
from reservations.services.status_sweeper import StatusSweeper

logger = logging.getLogger(__name__)

# Flag to stop the background task
_stop_scheduler = False


@dataclass
class SchedulerState:
    """When each pass last ran."""

    last_expiry: datetime | None = None
    last_progress: datetime | None = None
    last_no_show: datetime | None = None


def _due(last: datetime | None, now: datetime, seconds: int) -> bool:
    return last is None or (now - last).total_seconds() >= seconds


async def run_scheduled_work(now: datetime, state: SchedulerState) -> None:
    """Run whichever passes are due at ``now`` and update ``state``."""
    session_factory = get_session_factory()
    sweeper = StatusSweeper(session_factory)

    if _due(state.last_expiry, now, settings.expiry_sweep_minutes * 60):
        await sweeper.sweep(now, expire_payments=True, advance=False, detect_no_shows=False)
        state.last_expiry = now

    if _due(state.last_progress, now, 3600):
        await sweeper.sweep(now, expire_payments=False, advance=True, detect_no_shows=False)
        state.last_progress = now

    if now.hour == settings.no_show_sweep_hour and (
        state.last_no_show is None or state.last_no_show.date() != now.date()
    ):
        await sweeper.sweep(now, expire_payments=False, advance=False, detect_no_shows=True)
        state.last_no_show = now

    await outbox_service.drain(session_factory, now=now)


async def start_scheduler():
    """Background task that runs the due passes every tick."""
    global _stop_scheduler
    _stop_scheduler = False

    interval = max(settings.scheduler_interval_seconds, 1)
    state = SchedulerState()

    logger.info(f"In-process scheduler started (every {interval}s)")

    while not _stop_scheduler:
        try:
            await run_scheduled_work(utcnow(), state)
        except Exception as e:
            logger.exception(f"Scheduled work failed: {e}")

        # Wait for next tick (check stop flag every second)
        for _ in range(interval):
            if _stop_scheduler:
                break
            await asyncio.sleep(1)

    logger.info("In-process scheduler stopped")


def stop_scheduler():
    """Signal the scheduler to stop."""
    global _stop_scheduler
    _stop_scheduler = True
