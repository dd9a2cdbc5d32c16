"""
Request builders and session helpers shared by the integration tests.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import date, datetime, timedelta
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reservations.models.asset import Asset
from reservations.models.outbox import OutboxMessage
from reservations.models.reservation import Reservation
from reservations.schemas.reservation import ReservationCreate

T = TypeVar("T")


def range_request(
    asset: Asset,
    start: datetime,
    days: int = 2,
    **overrides: Any,
) -> ReservationCreate:
    """Reservation request for a vehicle or accommodation."""
    details: dict[str, Any] = {"asset_type": asset.asset_type}
    if asset.asset_type == "vehicle":
        details["pickup_location"] = "Aeroporto de Florianopolis"
    data: dict[str, Any] = {
        "asset_id": asset.id,
        "details": details,
        "start_at": start,
        "end_at": start + timedelta(days=days),
    }
    data.update(overrides)
    return ReservationCreate(**data)


def slot_request(
    asset: Asset,
    slot_date: date,
    slot_time: str = "10:00",
    quantity: int = 1,
    **overrides: Any,
) -> ReservationCreate:
    """Reservation request for a slot asset (tour, event, table)."""
    data: dict[str, Any] = {
        "asset_id": asset.id,
        "details": {"asset_type": asset.asset_type},
        "slot_date": slot_date,
        "slot_time": slot_time,
        "quantity": quantity,
    }
    data.update(overrides)
    return ReservationCreate(**data)


async def committed(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run a service operation in its own session and commit it."""
    async with session_factory() as db:
        result = await operation(db, *args, **kwargs)
        await db.commit()
        return result


async def reload(
    session_factory: async_sessionmaker[AsyncSession],
    reservation_id: UUID,
) -> Reservation:
    """Fresh copy of a reservation from the database."""
    async with session_factory() as db:
        return await db.get(Reservation, reservation_id)


async def outbox_messages(
    session_factory: async_sessionmaker[AsyncSession],
    reservation_id: UUID,
    kind: str | None = None,
) -> list[OutboxMessage]:
    async with session_factory() as db:
        query = select(OutboxMessage).where(OutboxMessage.reservation_id == reservation_id)
        if kind is not None:
            query = query.where(OutboxMessage.kind == kind)
        result = await db.execute(query.order_by(OutboxMessage.created_at))
        return list(result.scalars().all())
