"""Payment event ledger and payment link models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from reservations.database import Base, JSONType, UTCDateTime, utcnow


class PaymentEvent(Base):
    """Every gateway outcome received, keyed for idempotent application."""

    __tablename__ = "payment_events"
    __table_args__ = (
        UniqueConstraint(
            "reservation_id",
            "outcome",
            "external_payment_id",
            name="uq_payment_events_reservation_outcome_external",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reservations.id"), nullable=False, index=True
    )
    outcome: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # link_created, processing, paid, failed, expired
    external_payment_id: Mapped[str] = mapped_column(String(255), nullable=False)
    gateway: Mapped[str | None] = mapped_column(String(30))
    amount: Mapped[int | None] = mapped_column(Integer)
    currency: Mapped[str | None] = mapped_column(String(3))

    applied: Mapped[bool] = mapped_column(Boolean, default=False)
    result: Mapped[str | None] = mapped_column(
        String(40)
    )  # confirmed, expired, amount_mismatch, ignored_status, ...
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    received_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class PaymentLink(Base):
    """Payment link issued by a gateway for a reservation's binding price."""

    __tablename__ = "payment_links"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reservations.id"), nullable=False, index=True
    )
    gateway: Mapped[str] = mapped_column(String(30), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(255), index=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="BRL")
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
