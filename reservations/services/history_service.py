"""Reservation change history (append-only)."""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.core.permissions import Actor
from reservations.models.reservation import ChangeHistoryEntry, Reservation


class HistoryService:
    """Service for the immutable per-reservation change log."""

    async def record(
        self,
        db: AsyncSession,
        reservation: Reservation,
        change_type: str,
        description: str,
        actor: Actor | None = None,
        from_status: str | None = None,
        to_status: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> ChangeHistoryEntry:
        """Append a history entry.

        Args:
            db: Database session
            reservation: Reservation that changed
            change_type: Change name (e.g., "approved", "payment_failed")
            description: Human-readable summary
            actor: Who made the change; None for system changes
            from_status: Status before the change
            to_status: Status after the change
            data: Structured details

        Returns:
            Created history entry
        """
        entry = ChangeHistoryEntry(
            reservation_id=reservation.id,
            change_type=change_type,
            description=description,
            actor_id=actor.id if actor else None,
            actor_role=actor.role.value if actor else None,
            from_status=from_status,
            to_status=to_status,
            data=data,
        )
        db.add(entry)
        return entry

    async def list_for_reservation(
        self,
        db: AsyncSession,
        reservation_id: UUID,
    ) -> list[ChangeHistoryEntry]:
        """Return a reservation's history, oldest first."""
        result = await db.execute(
            select(ChangeHistoryEntry)
            .where(ChangeHistoryEntry.reservation_id == reservation_id)
            .order_by(ChangeHistoryEntry.created_at, ChangeHistoryEntry.id)
        )
        return list(result.scalars().all())


history_service = HistoryService()
