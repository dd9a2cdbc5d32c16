"""Reservation and change-history models."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, validates

from reservations.core.immutability import ImmutabilityViolationError
from reservations.database import Base, JSONType, UTCDateTime, utcnow
from reservations.domain.time_windows import TimeWindow


class Reservation(Base):
    """A reservation against one asset.

    Rows are never deleted; cancellation, rejection and expiry are statuses.
    Every UPDATE is guarded by ``version`` so concurrent writers cannot both
    succeed against the same observed state.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservations_asset_window", "asset_type", "asset_id", "start_at", "end_at"),
        Index("ix_reservations_asset_status", "asset_id", "status"),
        Index("ix_reservations_asset_slot", "asset_id", "slot_date", "slot_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    confirmation_code: Mapped[str] = mapped_column(
        String(120), unique=True, nullable=False, index=True
    )  # DDMM-SURNAME FIRSTNAME-NNNN or RSV-XXXXXXXX-XXXX

    asset_type: Mapped[str] = mapped_column(String(20), nullable=False)
    asset_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("assets.id"), nullable=False, index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    # Contact snapshot for reservations taken by staff
    customer_name: Mapped[str | None] = mapped_column(String(200))
    customer_email: Mapped[str | None] = mapped_column(String(255))
    customer_phone: Mapped[str | None] = mapped_column(String(40))

    # Window (UTC). Slot assets also keep the local date/time they were booked on.
    start_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    slot_date: Mapped[date | None] = mapped_column(Date)
    slot_time: Mapped[str | None] = mapped_column(String(5))  # HH:MM
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, index=True
    )  # draft, pending_approval, awaiting_confirmation, awaiting_payment, confirmed,
    # in_progress, completed, rejected, canceled, expired, no_show
    payment_status: Mapped[str] = mapped_column(
        String(30), nullable=False
    )  # not_required, pending, processing, paid, failed, refunded, partially_refunded, canceled
    payment_method: Mapped[str] = mapped_column(String(20), default="card")

    # Pricing (in centavos)
    estimated_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_price: Mapped[int | None] = mapped_column(Integer)
    paid_amount: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="BRL")

    payment_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, index=True)
    payment_link_url: Mapped[str | None] = mapped_column(Text)

    # Origin
    creation_method: Mapped[str] = mapped_column(
        String(30), default="traveler"
    )  # traveler, admin_direct, admin_phone, admin_walkin, admin_group, admin_conversion
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)

    special_requests: Mapped[str | None] = mapped_column(Text)
    internal_notes: Mapped[str | None] = mapped_column(Text)
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    # Auto-confirmation
    auto_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    matched_rule_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    no_show_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    canceled_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    rejected_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    expired_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    __mapper_args__ = {"version_id_col": version}

    @validates("confirmation_code")
    def validate_confirmation_code(self, key: str, value: str) -> str:
        """Confirmation codes are assigned once."""
        if self.confirmation_code is not None and value != self.confirmation_code:
            raise ImmutabilityViolationError("Reservation", "reassign the confirmation code of", str(self.id))
        return value

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(self.start_at, self.end_at)

    def snapshot(self) -> dict[str, Any]:
        """Minimal state returned alongside rejected writes."""
        return {
            "id": str(self.id),
            "status": self.status,
            "payment_status": self.payment_status,
            "version": self.version,
            "confirmation_code": self.confirmation_code,
        }


class ChangeHistoryEntry(Base):
    """Append-only record of every state-affecting reservation change."""

    __tablename__ = "reservation_change_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reservations.id"), nullable=False, index=True
    )
    change_type: Mapped[str] = mapped_column(
        String(40), nullable=False
    )  # created, approved, rejected, price_confirmed, payment_*, started, completed, ...
    description: Mapped[str] = mapped_column(Text, nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)  # None for system (sweeps, webhooks)
    actor_role: Mapped[str | None] = mapped_column(String(20))
    from_status: Mapped[str | None] = mapped_column(String(30))
    to_status: Mapped[str | None] = mapped_column(String(30))
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, index=True)
