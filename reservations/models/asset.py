"""Bookable asset model."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from reservations.database import Base, UTCDateTime, utcnow


class Asset(Base):
    """A resource reservations compete for (vehicle, table, tour, room...)."""

    __tablename__ = "assets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    asset_type: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )  # activity, event, restaurant, vehicle, accommodation, package
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    partner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)

    # Capacity (per slot for slot assets; range assets are a single unit)
    capacity: Mapped[int | None] = mapped_column(Integer)  # None = unlimited
    min_quantity: Mapped[int] = mapped_column(Integer, default=1)
    max_quantity: Mapped[int | None] = mapped_column(Integer)
    slot_duration_minutes: Mapped[int | None] = mapped_column(Integer)

    # Pricing (in centavos - smallest currency unit)
    unit_price: Mapped[int] = mapped_column(Integer, default=0)  # per guest, or per day for range assets
    pricing_mode: Mapped[str] = mapped_column(String(10), default="fixed")  # fixed, quote
    currency: Mapped[str] = mapped_column(String(3), default="BRL")

    timezone: Mapped[str] = mapped_column(String(50), default="America/Sao_Paulo")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
