"""Celery background tasks.

Each task runs its async implementation on a fresh event loop with a
database engine created for that loop and disposed afterwards.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import UUID

from celery import shared_task
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reservations.core.immutability import register_immutability_enforcement
from reservations.database import close_db, configure_database, get_db_context
from reservations.services.notification_service import notification_service
from reservations.services.outbox_service import outbox_service
from reservations.services.payment_handler import payment_handler
from reservations.services.status_sweeper import StatusSweeper

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_async(work: Callable[[async_sessionmaker[AsyncSession]], Awaitable[T]]) -> T:
    """Run async work in sync context against a loop-local engine."""

    async def runner() -> T:
        register_immutability_enforcement()
        session_factory = configure_database()
        try:
            return await work(session_factory)
        finally:
            await notification_service.close()
            await close_db()

    return asyncio.run(runner())


# ==================== SWEEPS ====================


@shared_task(bind=True, max_retries=3)
def sweep_expired_payments(self) -> dict[str, Any]:
    """Expire reservations whose payment window has lapsed.

    Runs every few minutes.
    """
    try:
        report = run_async(
            lambda sf: StatusSweeper(sf).sweep(
                expire_payments=True, advance=False, detect_no_shows=False
            )
        )
        return {"status": "success", **report.as_dict()}
    except Exception as exc:
        logger.exception(f"Expiry sweep failed: {exc}")
        raise self.retry(exc=exc, countdown=60)


@shared_task(bind=True, max_retries=3)
def sweep_reservation_progress(self) -> dict[str, Any]:
    """Start confirmed reservations and complete finished ones."""
    try:
        report = run_async(
            lambda sf: StatusSweeper(sf).sweep(
                expire_payments=False, advance=True, detect_no_shows=False
            )
        )
        return {"status": "success", **report.as_dict()}
    except Exception as exc:
        logger.exception(f"Progress sweep failed: {exc}")
        raise self.retry(exc=exc, countdown=300)


@shared_task(bind=True, max_retries=3)
def sweep_no_shows(self) -> dict[str, Any]:
    """Mark confirmed reservations whose window ended unused as no-shows."""
    try:
        report = run_async(
            lambda sf: StatusSweeper(sf).sweep(
                expire_payments=False, advance=False, detect_no_shows=True
            )
        )
        return {"status": "success", **report.as_dict()}
    except Exception as exc:
        logger.exception(f"No-show sweep failed: {exc}")
        raise self.retry(exc=exc, countdown=600)


# ==================== PAYMENTS ====================


@shared_task(bind=True, max_retries=3)
def expire_reservation_payment(self, reservation_id: str) -> dict[str, Any]:
    """Expire one reservation now if its payment deadline has passed.

    For operators; the periodic sweep covers the normal path.
    """

    async def _expire(_: async_sessionmaker[AsyncSession]) -> str:
        async with get_db_context() as db:
            reservation = await payment_handler.on_payment_deadline_elapsed(db, UUID(reservation_id))
            return reservation.status

    try:
        status = run_async(_expire)
        return {"status": "success", "reservation_status": status}
    except Exception as exc:
        logger.exception(f"Expiring reservation {reservation_id} failed: {exc}")
        raise self.retry(exc=exc, countdown=60)


# ==================== OUTBOX ====================


@shared_task(bind=True, max_retries=3)
def drain_outbox(self) -> dict[str, Any]:
    """Dispatch due outbox messages.

    Individual message failures are retried by the outbox itself; only
    a failure of the drain as a whole retries the task.
    """
    try:
        report = run_async(outbox_service.drain)
        return {"status": "success", **report.as_dict()}
    except Exception as exc:
        logger.exception(f"Outbox drain failed: {exc}")
        raise self.retry(exc=exc, countdown=30)
