"""Auto-confirmation rule schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from reservations.domain.auto_confirmation import RuleConditions


class RuleCreate(BaseModel):
    asset_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    priority: int = Field(default=100, ge=0)
    enabled: bool = True
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    notify_customer: bool = True
    notify_partner: bool = True


class RuleUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    priority: int | None = Field(None, ge=0)
    enabled: bool | None = None
    conditions: RuleConditions | None = None
    notify_customer: bool | None = None
    notify_partner: bool | None = None


class RuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    asset_id: UUID
    asset_type: str
    name: str
    priority: int
    enabled: bool
    lifecycle: str
    conditions: RuleConditions
    notify_customer: bool
    notify_partner: bool
    times_applied: int
    last_applied_at: datetime | None
    created_at: datetime
    updated_at: datetime
