"""Auto-confirmation rule model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from reservations.database import Base, JSONType, UTCDateTime, utcnow
from reservations.domain.auto_confirmation import EvaluableRule, RuleConditions


class AutoConfirmationRule(Base):
    """Per-asset rule letting matching reservations skip manual approval."""

    __tablename__ = "auto_confirmation_rules"
    __table_args__ = (Index("ix_auto_confirmation_rules_asset_priority", "asset_id", "priority"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    asset_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("assets.id"), nullable=False, index=True
    )
    asset_type: Mapped[str] = mapped_column(String(20), nullable=False)
    partner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)  # lower runs first
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    lifecycle: Mapped[str] = mapped_column(String(10), default="active")  # active, archived
    conditions: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)

    notify_customer: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_partner: Mapped[bool] = mapped_column(Boolean, default=True)

    # Statistics
    times_applied: Mapped[int] = mapped_column(Integer, default=0)
    last_applied_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    def to_evaluable(self) -> EvaluableRule:
        return EvaluableRule(
            id=self.id,
            priority=self.priority,
            conditions=RuleConditions.model_validate(self.conditions or {}),
            enabled=self.enabled,
        )
