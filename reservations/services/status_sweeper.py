"""Time-driven status sweeps.

Moves reservations along as the clock passes their deadlines and
windows: unpaid holds expire, confirmed reservations start, started ones
complete, and confirmed ones that never started become no-shows.

Candidates are selected in one read, then each is re-read, re-checked
and written in its own transaction, so a reservation changed in the
meantime is skipped instead of overwritten. Sweeping twice is the same
as sweeping once.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reservations.core.exceptions import ConcurrencyError, InvalidTransitionError, NotFoundError
from reservations.database import utcnow
from reservations.domain.payment_state import PaymentStatus
from reservations.domain.reservation_state import (
    AWAITING_PAYMENT_STATUSES,
    ReservationEvent,
    ReservationStatus,
)
from reservations.models.reservation import Reservation
from reservations.services.payment_handler import payment_handler
from reservations.services.transition_service import apply_transition, get_reservation_for_update

logger = logging.getLogger(__name__)

# Step applied to one locked reservation; returns whether it changed it
SweepStep = Callable[[AsyncSession, Reservation, datetime], Awaitable[bool]]


@dataclass
class SweepReport:
    """Counts of what one sweep did."""

    expired: int = 0
    started: int = 0
    completed: int = 0
    no_show: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)

    @property
    def changed(self) -> int:
        return self.expired + self.started + self.completed + self.no_show


class StatusSweeper:
    """Runs the time-driven transitions against a session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def sweep(
        self,
        now: datetime | None = None,
        *,
        expire_payments: bool = True,
        advance: bool = True,
        detect_no_shows: bool = True,
    ) -> SweepReport:
        """Run the enabled passes in order and report what changed."""
        now = now or utcnow()
        report = SweepReport()

        if expire_payments:
            report.expired = await self._run(self._expiry_candidates(now), self._expire, now, report)
        if advance:
            report.started = await self._run(self._start_candidates(now), self._start, now, report)
            report.completed = await self._run(self._completion_candidates(now), self._complete, now, report)
        if detect_no_shows:
            report.no_show = await self._run(self._no_show_candidates(now), self._no_show, now, report)

        if report.changed or report.skipped:
            logger.info(f"Status sweep at {now.isoformat()}: {report.as_dict()}")
        return report

    # ==================== CANDIDATES ====================

    def _expiry_candidates(self, now: datetime):
        return select(Reservation.id).where(
            Reservation.status.in_([s.value for s in AWAITING_PAYMENT_STATUSES]),
            Reservation.payment_status.in_([PaymentStatus.PENDING.value, PaymentStatus.FAILED.value]),
            Reservation.payment_deadline.is_not(None),
            Reservation.payment_deadline < now,
        )

    def _start_candidates(self, now: datetime):
        return select(Reservation.id).where(
            Reservation.status == ReservationStatus.CONFIRMED.value,
            Reservation.start_at <= now,
            Reservation.end_at > now,
        )

    def _completion_candidates(self, now: datetime):
        return select(Reservation.id).where(
            Reservation.status == ReservationStatus.IN_PROGRESS.value,
            Reservation.end_at <= now,
        )

    def _no_show_candidates(self, now: datetime):
        return select(Reservation.id).where(
            Reservation.status == ReservationStatus.CONFIRMED.value,
            Reservation.end_at <= now,
        )

    # ==================== STEPS ====================

    async def _expire(self, db: AsyncSession, reservation: Reservation, now: datetime) -> bool:
        return await payment_handler.expire_if_due(db, reservation, now)

    async def _start(self, db: AsyncSession, reservation: Reservation, now: datetime) -> bool:
        if not (
            reservation.status == ReservationStatus.CONFIRMED.value
            and reservation.start_at <= now < reservation.end_at
        ):
            return False
        await apply_transition(
            db,
            reservation,
            ReservationEvent.START,
            ReservationStatus.IN_PROGRESS,
            change_type="started",
            description="Reservation window started",
            now=now,
        )
        return True

    async def _complete(self, db: AsyncSession, reservation: Reservation, now: datetime) -> bool:
        if not (reservation.status == ReservationStatus.IN_PROGRESS.value and reservation.end_at <= now):
            return False
        await apply_transition(
            db,
            reservation,
            ReservationEvent.FINISH,
            ReservationStatus.COMPLETED,
            change_type="completed",
            description="Reservation window ended",
            now=now,
        )
        return True

    async def _no_show(self, db: AsyncSession, reservation: Reservation, now: datetime) -> bool:
        if not (reservation.status == ReservationStatus.CONFIRMED.value and reservation.end_at <= now):
            return False
        await apply_transition(
            db,
            reservation,
            ReservationEvent.FINISH,
            ReservationStatus.NO_SHOW,
            change_type="no_show",
            description="Reservation window ended without check-in",
            now=now,
        )
        return True

    # ==================== EXECUTION ====================

    async def _run(self, candidates, step: SweepStep, now: datetime, report: SweepReport) -> int:
        async with self._session_factory() as db:
            result = await db.execute(candidates)
            reservation_ids = list(result.scalars().all())

        changed = 0
        for reservation_id in reservation_ids:
            if await self._apply(reservation_id, step, now):
                changed += 1
            else:
                report.skipped += 1
        return changed

    async def _apply(self, reservation_id: UUID, step: SweepStep, now: datetime) -> bool:
        async with self._session_factory() as db:
            try:
                reservation = await get_reservation_for_update(db, reservation_id)
                changed = await step(db, reservation, now)
                await db.commit()
                return changed
            except (ConcurrencyError, InvalidTransitionError, NotFoundError) as e:
                await db.rollback()
                logger.info(f"Sweep skipped reservation {reservation_id}: {e.detail}")
                return False
