"""Voucher model."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from reservations.database import Base, UTCDateTime, utcnow


class VoucherStatus(str, Enum):
    ACTIVE = "active"
    USED = "used"
    CANCELED = "canceled"


class Voucher(Base):
    """Proof of a confirmed reservation, at most one per reservation."""

    __tablename__ = "vouchers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reservations.id"), nullable=False, unique=True
    )
    voucher_number: Mapped[str] = mapped_column(
        String(30), unique=True, nullable=False
    )  # VCH-YYYYMMDD-XXXX
    verification_token: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=VoucherStatus.ACTIVE.value)
    issued_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
