"""Availability checks against reservations holding an asset.

Range assets (vehicles, accommodation) are a single unit: any overlap
with a holding reservation is a conflict. Slot assets (tours, events,
tables) are booked by local date and start time, and conflict only
once the slot's capacity would be exceeded.
"""

import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.core.exceptions import NotFoundError
from reservations.domain.assets import is_range_asset
from reservations.domain.reservation_state import HOLDING_STATUSES
from reservations.domain.time_windows import RequestedWindow
from reservations.models.asset import Asset
from reservations.models.reservation import Reservation

logger = logging.getLogger(__name__)

_HOLDING = [s.value for s in HOLDING_STATUSES]


class ConflictService:
    """Service for answering whether a window is still free."""

    async def lock_asset(self, db: AsyncSession, asset_id: UUID) -> Asset:
        """Lock the asset row so check-then-write is serialized per asset.

        Raises:
            NotFoundError: If the asset does not exist
        """
        result = await db.execute(
            select(Asset).where(Asset.id == asset_id).with_for_update()
        )
        asset = result.scalar_one_or_none()
        if asset is None:
            raise NotFoundError("Asset", str(asset_id))
        return asset

    def _holding(self, asset: Asset, exclude_reservation_id: UUID | None) -> list:
        conditions = [Reservation.asset_id == asset.id, Reservation.status.in_(_HOLDING)]
        if exclude_reservation_id is not None:
            conditions.append(Reservation.id != exclude_reservation_id)
        return conditions

    async def has_conflict(
        self,
        db: AsyncSession,
        asset: Asset,
        requested: RequestedWindow,
        exclude_reservation_id: UUID | None = None,
    ) -> bool:
        """Whether the requested window collides with a holding reservation.

        Args:
            db: Database session
            asset: Asset being booked
            requested: Window, quantity and slot being asked for
            exclude_reservation_id: Reservation being edited, ignored in the check

        Returns:
            bool: True if the request cannot be accommodated
        """
        if is_range_asset(asset.asset_type):
            result = await db.execute(
                select(Reservation.id)
                .where(
                    *self._holding(asset, exclude_reservation_id),
                    Reservation.start_at < requested.window.end,
                    Reservation.end_at > requested.window.start,
                )
                .limit(1)
            )
            conflicting = result.scalar_one_or_none()
            if conflicting is not None:
                logger.info(f"Asset {asset.id} window conflicts with reservation {conflicting}")
            return conflicting is not None

        if asset.capacity is None:
            return False

        held = await self.occupancy(db, asset, requested, exclude_reservation_id)
        if held + requested.quantity > asset.capacity:
            logger.info(
                f"Asset {asset.id} slot {requested.slot_date} {requested.slot_time} full: "
                f"{held} held + {requested.quantity} requested > {asset.capacity}"
            )
            return True
        return False

    async def occupancy(
        self,
        db: AsyncSession,
        asset: Asset,
        requested: RequestedWindow,
        exclude_reservation_id: UUID | None = None,
    ) -> int:
        """Guests already holding the requested slot."""
        result = await db.execute(
            select(func.coalesce(func.sum(Reservation.quantity), 0)).where(
                *self._holding(asset, exclude_reservation_id),
                Reservation.slot_date == requested.slot_date,
                Reservation.slot_time == requested.slot_time,
            )
        )
        return int(result.scalar_one())

    async def occupancy_percentage(
        self,
        db: AsyncSession,
        asset: Asset,
        requested: RequestedWindow,
        exclude_reservation_id: UUID | None = None,
    ) -> float | None:
        """Slot occupancy including the request, or None when it can't be measured."""
        if is_range_asset(asset.asset_type) or not asset.capacity:
            return None
        held = await self.occupancy(db, asset, requested, exclude_reservation_id)
        return (held + requested.quantity) / asset.capacity * 100

    async def minutes_to_neighbor(
        self,
        db: AsyncSession,
        asset: Asset,
        requested: RequestedWindow,
        exclude_reservation_id: UUID | None = None,
        horizon: timedelta = timedelta(days=1),
    ) -> float | None:
        """Gap in minutes to the closest holding reservation before or after.

        Returns None for slot assets and when nothing is held within the horizon.
        """
        if not is_range_asset(asset.asset_type):
            return None

        window = requested.window
        holding = self._holding(asset, exclude_reservation_id)
        before = await db.execute(
            select(func.max(Reservation.end_at)).where(
                *holding,
                Reservation.end_at <= window.start,
                Reservation.end_at > window.start - horizon,
            )
        )
        after = await db.execute(
            select(func.min(Reservation.start_at)).where(
                *holding,
                Reservation.start_at >= window.end,
                Reservation.start_at < window.end + horizon,
            )
        )

        gaps = []
        previous_end = before.scalar_one_or_none()
        next_start = after.scalar_one_or_none()
        if previous_end is not None:
            gaps.append((window.start - _aware(previous_end)).total_seconds() / 60)
        if next_start is not None:
            gaps.append((_aware(next_start) - window.end).total_seconds() / 60)
        return min(gaps) if gaps else None


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


conflict_service = ConflictService()
