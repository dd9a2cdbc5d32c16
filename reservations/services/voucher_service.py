"""Voucher issuance."""

import logging
import secrets
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.models.reservation import Reservation
from reservations.models.voucher import Voucher, VoucherStatus
from reservations.utils.confirmation_code import generate_voucher_number

logger = logging.getLogger(__name__)


class VoucherService:
    """Issues at most one voucher per reservation."""

    async def get_for_reservation(self, db: AsyncSession, reservation_id: UUID) -> Voucher | None:
        result = await db.execute(select(Voucher).where(Voucher.reservation_id == reservation_id))
        return result.scalar_one_or_none()

    async def issue_voucher(self, db: AsyncSession, reservation: Reservation) -> Voucher:
        """Return the reservation's voucher, creating it on first call.

        A concurrent issuer racing on the unique reservation key loses on
        insert and gets the winner's voucher back.
        """
        existing = await self.get_for_reservation(db, reservation.id)
        if existing is not None:
            return existing

        voucher = Voucher(
            reservation_id=reservation.id,
            voucher_number=generate_voucher_number(),
            verification_token=secrets.token_urlsafe(32)[:64],
        )
        try:
            async with db.begin_nested():
                db.add(voucher)
        except IntegrityError:
            existing = await self.get_for_reservation(db, reservation.id)
            if existing is None:
                raise
            return existing

        logger.info(f"Issued voucher {voucher.voucher_number} for reservation {reservation.id}")
        return voucher

    async def cancel_for_reservation(self, db: AsyncSession, reservation_id: UUID) -> Voucher | None:
        """Void the reservation's voucher if it can still be redeemed."""
        voucher = await self.get_for_reservation(db, reservation_id)
        if voucher is None or voucher.status != VoucherStatus.ACTIVE.value:
            return None
        voucher.status = VoucherStatus.CANCELED.value
        logger.info(f"Canceled voucher {voucher.voucher_number} for reservation {reservation_id}")
        return voucher


voucher_service = VoucherService()
