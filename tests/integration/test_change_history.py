"""
Integration tests for the append-only change history and reservation deletion guard.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from reservations.core.immutability import ImmutabilityViolationError
from reservations.core.permissions import Actor
from reservations.models.reservation import ChangeHistoryEntry, Reservation
from reservations.services.reservation_service import reservation_service
from tests.factories import committed, range_request


@pytest.fixture
async def reservation(session_factory, make_asset, traveler: Actor, now) -> Reservation:
    asset = await make_asset()
    return await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=3)),
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_history_entry_cannot_be_updated(session_factory, reservation: Reservation) -> None:
    """Test that history entries are read-only once written."""
    async with session_factory() as db:
        entry = (
            await db.execute(
                select(ChangeHistoryEntry).where(ChangeHistoryEntry.reservation_id == reservation.id)
            )
        ).scalar_one()
        entry.description = "rewritten"

        with pytest.raises(ImmutabilityViolationError):
            await db.flush()
        await db.rollback()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_history_entry_cannot_be_deleted(session_factory, reservation: Reservation) -> None:
    """Test that history entries cannot be removed."""
    async with session_factory() as db:
        entry = (
            await db.execute(
                select(ChangeHistoryEntry).where(ChangeHistoryEntry.reservation_id == reservation.id)
            )
        ).scalar_one()
        await db.delete(entry)

        with pytest.raises(ImmutabilityViolationError):
            await db.flush()
        await db.rollback()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_reservation_cannot_be_deleted(session_factory, reservation: Reservation) -> None:
    """Test that reservations end in a status instead of being deleted."""
    async with session_factory() as db:
        stored = await db.get(Reservation, reservation.id)
        await db.delete(stored)

        with pytest.raises(ImmutabilityViolationError):
            await db.flush()
        await db.rollback()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_every_change_is_recorded_in_order(
    session_factory, reservation: Reservation, employee: Actor, traveler: Actor
) -> None:
    """Test that each transition appends one entry with its actor and statuses."""
    await committed(session_factory, reservation_service.approve_reservation, employee, reservation.id)
    await committed(session_factory, reservation_service.cancel_reservation, traveler, reservation.id, "Sick")

    entries = await committed(session_factory, reservation_service.get_history, traveler, reservation.id)

    assert [e.change_type for e in entries] == ["created", "price_confirmed", "canceled"]
    assert [(e.from_status, e.to_status) for e in entries] == [
        (None, "pending_approval"),
        ("pending_approval", "awaiting_payment"),
        ("awaiting_payment", "canceled"),
    ]
    assert entries[1].actor_role == "employee"
    assert entries[2].actor_id == traveler.id
    assert entries[2].data == {"reason": "Sick"}
