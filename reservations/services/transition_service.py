"""Applies state machine transitions to persisted reservations.

Every status or payment-status change goes through here so that the
guard, the timestamps, the history entry and the version check happen
together.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from reservations.core.exceptions import (
    ConcurrencyError,
    InvalidTransitionError,
    NotFoundError,
)
from reservations.core.permissions import Actor
from reservations.database import utcnow
from reservations.domain.payment_state import PaymentStatus, assert_payment_transition
from reservations.domain.reservation_state import (
    STATUS_TIMESTAMPS,
    ReservationEvent,
    ReservationStatus,
    assert_reservation_transition,
    assert_valid_payment_pair,
)
from reservations.models.reservation import Reservation
from reservations.services.history_service import history_service
from reservations.services.voucher_service import voucher_service

logger = logging.getLogger(__name__)

# Closing statuses that leave an issued voucher unredeemable.
VOIDS_VOUCHER = frozenset(
    {
        ReservationStatus.CANCELED,
        ReservationStatus.EXPIRED,
        ReservationStatus.REJECTED,
        ReservationStatus.NO_SHOW,
    }
)


async def get_reservation_for_update(db: AsyncSession, reservation_id: UUID) -> Reservation:
    """Load a reservation with a row lock, refreshing any cached copy."""
    result = await db.execute(
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    reservation = result.scalar_one_or_none()
    if reservation is None:
        raise NotFoundError("Reservation", str(reservation_id))
    return reservation


async def flush_reservation(db: AsyncSession, reservation: Reservation) -> None:
    """Flush pending changes, turning a lost version race into ConcurrencyError."""
    reservation_id = reservation.id
    try:
        await db.flush()
    except StaleDataError:
        logger.warning(f"Concurrent modification of reservation {reservation_id}")
        raise ConcurrencyError(current_state={"id": str(reservation_id)})


async def apply_transition(
    db: AsyncSession,
    reservation: Reservation,
    event: ReservationEvent,
    target: ReservationStatus,
    *,
    description: str,
    actor: Actor | None = None,
    payment_status: PaymentStatus | None = None,
    change_type: str | None = None,
    data: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Reservation:
    """Move a reservation to ``target`` on ``event``.

    Raises:
        InvalidTransitionError: If the state machine forbids the move; the
            reservation is left untouched
        ConcurrencyError: If another writer changed the row first
    """
    now = now or utcnow()
    current = ReservationStatus(reservation.status)
    new_payment = PaymentStatus(payment_status or reservation.payment_status)

    try:
        assert_reservation_transition(current, event, target)
        assert_payment_transition(reservation.payment_status, new_payment)
        assert_valid_payment_pair(target, new_payment)
    except InvalidTransitionError as e:
        e.current_state = reservation.snapshot()
        raise

    reservation.status = target.value
    reservation.payment_status = new_payment.value
    timestamp_field = STATUS_TIMESTAMPS.get(target)
    if timestamp_field and getattr(reservation, timestamp_field) is None:
        setattr(reservation, timestamp_field, now)
    if new_payment == PaymentStatus.PAID and reservation.paid_at is None:
        reservation.paid_at = now
    reservation.updated_at = now

    await history_service.record(
        db,
        reservation,
        change_type=change_type or target.value,
        description=description,
        actor=actor,
        from_status=current.value,
        to_status=target.value,
        data=data,
    )
    if target in VOIDS_VOUCHER:
        await voucher_service.cancel_for_reservation(db, reservation.id)
    await flush_reservation(db, reservation)

    logger.info(
        f"Reservation {reservation.id}: {current.value} -> {target.value} "
        f"(event={event.value}, payment={new_payment.value})"
    )
    return reservation


async def apply_payment_status(
    db: AsyncSession,
    reservation: Reservation,
    payment_status: PaymentStatus,
    *,
    description: str,
    change_type: str,
    actor: Actor | None = None,
    data: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Reservation:
    """Change only the payment status, keeping the reservation status."""
    now = now or utcnow()
    current = PaymentStatus(reservation.payment_status)

    try:
        assert_payment_transition(current, payment_status)
        assert_valid_payment_pair(reservation.status, payment_status)
    except InvalidTransitionError as e:
        e.current_state = reservation.snapshot()
        raise

    reservation.payment_status = payment_status.value
    if payment_status == PaymentStatus.PAID and reservation.paid_at is None:
        reservation.paid_at = now
    reservation.updated_at = now

    await history_service.record(
        db,
        reservation,
        change_type=change_type,
        description=description,
        actor=actor,
        from_status=reservation.status,
        to_status=reservation.status,
        data={"payment_status": {"from": current.value, "to": payment_status.value}, **(data or {})},
    )
    await flush_reservation(db, reservation)

    logger.info(
        f"Reservation {reservation.id}: payment {current.value} -> {payment_status.value}"
    )
    return reservation
