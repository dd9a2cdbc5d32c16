"""
Integration tests for writers racing on the same reservation.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from reservations.core.exceptions import ConcurrencyError, InvalidTransitionError
from reservations.core.idempotency import claim_payment_event
from reservations.core.permissions import Actor
from reservations.domain.payment_state import PaymentOutcome, PaymentStatus
from reservations.domain.reservation_state import ReservationStatus
from reservations.models.payment import PaymentEvent
from reservations.models.reservation import ChangeHistoryEntry, Reservation
from reservations.models.voucher import Voucher
from reservations.services.outbox_service import outbox_service
from reservations.services.payment_handler import payment_handler
from reservations.services.reservation_service import reservation_service
from reservations.services.status_sweeper import StatusSweeper
from reservations.services.transition_service import flush_reservation
from tests.factories import committed, range_request, reload


@pytest.fixture
async def awaiting_payment(session_factory, make_asset, traveler: Actor, employee: Actor, now):
    """A R$500 reservation approved at ``now`` and waiting for payment."""
    asset = await make_asset(unit_price=25000)
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=10)),
        now=now,
    )
    return await committed(
        session_factory, reservation_service.approve_reservation, employee, reservation.id, now=now
    )


async def pay(session_factory, reservation_id, at, external_id="pi_123"):
    return await committed(
        session_factory,
        payment_handler.on_payment_event,
        reservation_id,
        PaymentOutcome.PAID,
        external_id,
        amount=50000,
        currency="BRL",
        gateway="stripe",
        now=at,
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_stale_version_raises_concurrency_error(session_factory, awaiting_payment, now) -> None:
    """Test that writing over a row another writer already bumped fails and changes nothing."""
    async with session_factory() as db:
        reservation = await db.get(Reservation, awaiting_payment.id)
        loaded_version = reservation.version
        # Another writer commits between our read and our write
        await db.execute(
            update(Reservation.__table__)
            .where(Reservation.__table__.c.id == reservation.id)
            .values(version=loaded_version + 1)
        )

        reservation.internal_notes = "Late edit"
        with pytest.raises(ConcurrencyError) as exc_info:
            await flush_reservation(db, reservation)
        await db.rollback()

    assert exc_info.value.code == "concurrent_modification"
    assert exc_info.value.current_state == {"id": str(awaiting_payment.id)}
    stored = await reload(session_factory, awaiting_payment.id)
    assert stored.version == awaiting_payment.version
    assert stored.internal_notes is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_concurrent_duplicate_payments_apply_once(session_factory, awaiting_payment, now) -> None:
    """Test that one payment delivered five times at once confirms once and issues one voucher."""
    at = now + timedelta(hours=1)

    results = await asyncio.gather(*(pay(session_factory, awaiting_payment.id, at) for _ in range(5)))

    assert sorted(r.duplicate for r in results) == [False, True, True, True, True]
    assert {r.result for r in results} == {"confirmed"}
    stored = await reload(session_factory, awaiting_payment.id)
    assert stored.status == ReservationStatus.CONFIRMED.value
    assert stored.payment_status == PaymentStatus.PAID.value
    assert stored.paid_amount == 50000

    await outbox_service.drain(session_factory)
    async with session_factory() as db:
        events = (await db.execute(select(func.count(PaymentEvent.id)))).scalar_one()
        vouchers = (await db.execute(select(func.count(Voucher.id)))).scalar_one()
        confirmations = (
            await db.execute(
                select(func.count(ChangeHistoryEntry.id)).where(
                    ChangeHistoryEntry.reservation_id == awaiting_payment.id,
                    ChangeHistoryEntry.change_type == "payment_received",
                )
            )
        ).scalar_one()
    assert events == 1
    assert vouchers == 1
    assert confirmations == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_payment_claim_lost_on_insert_returns_the_winner(
    session_factory, awaiting_payment, now, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that a claim whose lookup missed a concurrent insert gets the winner's ledger row."""
    winner = await pay(session_factory, awaiting_payment.id, now + timedelta(hours=1))
    assert winner.duplicate is False

    class _NotYetVisible:
        def scalar_one_or_none(self):
            return None

    async with session_factory() as db:
        execute = db.execute
        lookups = []

        async def lookup_misses_once(statement, *args, **kwargs):
            result = await execute(statement, *args, **kwargs)
            if not lookups:
                lookups.append(statement)
                return _NotYetVisible()
            return result

        monkeypatch.setattr(db, "execute", lookup_misses_once)
        event, created = await claim_payment_event(
            db,
            reservation_id=awaiting_payment.id,
            outcome=PaymentOutcome.PAID.value,
            external_payment_id="pi_123",
            gateway="stripe",
            amount=50000,
        )
        await db.commit()

    assert created is False
    assert event.result == "confirmed"
    assert event.applied is True
    async with session_factory() as db:
        events = (await db.execute(select(func.count(PaymentEvent.id)))).scalar_one()
    assert events == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_sweep_racing_cancellation_ends_in_one_terminal_state(
    session_factory, awaiting_payment, traveler: Actor, now
) -> None:
    """Test that an expiry sweep and a cancellation never both win."""
    sweep_at = now + timedelta(hours=25)

    report, canceled = await asyncio.gather(
        StatusSweeper(session_factory).sweep(sweep_at, advance=False, detect_no_shows=False),
        committed(session_factory, reservation_service.cancel_reservation, traveler, awaiting_payment.id),
        return_exceptions=True,
    )

    stored = await reload(session_factory, awaiting_payment.id)
    if stored.status == ReservationStatus.EXPIRED.value:
        assert report.expired == 1
        assert isinstance(canceled, InvalidTransitionError)
        assert canceled.current_state["status"] == ReservationStatus.EXPIRED.value
        assert stored.canceled_at is None
        assert stored.expired_at == sweep_at
    else:
        assert stored.status == ReservationStatus.CANCELED.value
        assert report.expired == 0
        assert canceled.status == ReservationStatus.CANCELED.value
        assert stored.expired_at is None
        assert stored.canceled_at is not None
    assert stored.payment_status == PaymentStatus.CANCELED.value

    async with session_factory() as db:
        closings = (
            await db.execute(
                select(func.count(ChangeHistoryEntry.id)).where(
                    ChangeHistoryEntry.reservation_id == awaiting_payment.id,
                    ChangeHistoryEntry.to_status.in_(
                        [ReservationStatus.EXPIRED.value, ReservationStatus.CANCELED.value]
                    ),
                )
            )
        ).scalar_one()
    assert closings == 1
