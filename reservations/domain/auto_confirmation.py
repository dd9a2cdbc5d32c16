"""Auto-confirmation rule evaluation.

A rule is a set of predicate groups. Each group can be switched on or off
independently, and a rule matches when every enabled group is satisfied.
Rules are tried in ascending priority and the first match wins. A rule
with every group switched off matches any candidate, which is how a
partner says "always auto-confirm this asset".
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from reservations.core.exceptions import ValidationError
from reservations.domain.assets import MANUAL_APPROVAL_ASSET_TYPES, AssetType
from reservations.domain.payment_state import PaymentMethod
from reservations.domain.time_windows import get_zone, parse_hhmm


class CustomerType(str, Enum):
    NEW = "new"
    RETURNING = "returning"


class HourRange(BaseModel):
    """Wall-clock window; wraps past midnight when start is after end."""

    start: str = Field(..., examples=["08:00"])
    end: str = Field(..., examples=["22:00"])

    @field_validator("start", "end")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        try:
            parse_hhmm(v)
        except ValidationError as e:
            raise ValueError(e.detail)
        return v


class TimeRestrictions(BaseModel):
    enabled: bool = False
    allowed_days_of_week: list[int] = Field(default_factory=list)  # 0 = Sunday
    allowed_hours: HourRange | None = None
    timezone: str = "America/Sao_Paulo"

    @field_validator("allowed_days_of_week")
    @classmethod
    def validate_days(cls, v: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in v):
            raise ValueError("days of week must be between 0 (Sunday) and 6 (Saturday)")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            get_zone(v)
        except ValidationError as e:
            raise ValueError(e.detail)
        return v


class AmountThresholds(BaseModel):
    enabled: bool = False
    min_amount: int | None = Field(None, ge=0)
    max_amount: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def validate_bounds(self) -> "AmountThresholds":
        if self.min_amount is not None and self.max_amount is not None:
            if self.min_amount > self.max_amount:
                raise ValueError("min_amount cannot exceed max_amount")
        return self


class CustomerFilters(BaseModel):
    enabled: bool = False
    allowed_customer_types: list[CustomerType] = Field(default_factory=list)
    min_booking_history: int = Field(0, ge=0)
    blacklisted_customers: list[UUID] = Field(default_factory=list)


class BookingConditions(BaseModel):
    enabled: bool = False
    max_guests: int | None = Field(None, ge=1)
    min_advance_hours: int | None = Field(None, ge=0)
    max_advance_hours: int | None = Field(None, ge=0)
    allowed_payment_methods: list[PaymentMethod] = Field(default_factory=list)


class AvailabilityConditions(BaseModel):
    enabled: bool = False
    require_availability_check: bool = True
    max_occupancy_percentage: float | None = Field(None, gt=0, le=100)
    buffer_minutes: int = Field(0, ge=0)


class RuleConditions(BaseModel):
    """All predicate groups of a rule."""

    time: TimeRestrictions = Field(default_factory=TimeRestrictions)
    amount: AmountThresholds = Field(default_factory=AmountThresholds)
    customer: CustomerFilters = Field(default_factory=CustomerFilters)
    booking: BookingConditions = Field(default_factory=BookingConditions)
    availability: AvailabilityConditions = Field(default_factory=AvailabilityConditions)


@dataclass(frozen=True)
class CandidateContext:
    """Everything the predicates look at for one candidate reservation."""

    asset_type: str
    customer_id: UUID
    quantity: int
    amount: int | None
    starts_at: datetime
    payment_method: str
    now: datetime
    completed_reservations: int = 0
    has_conflict: bool = False
    occupancy_percentage: float | None = None  # None when capacity is unlimited
    minutes_to_neighbor: float | None = None  # gap to the closest holding reservation


@dataclass(frozen=True)
class EvaluableRule:
    id: UUID
    priority: int
    conditions: RuleConditions
    enabled: bool = True


@dataclass(frozen=True)
class RuleDecision:
    auto_confirm: bool
    matched_rule_id: UUID | None = None
    reason: str = ""


def _time_matches(group: TimeRestrictions, ctx: CandidateContext) -> bool:
    local = ctx.starts_at.astimezone(get_zone(group.timezone))
    if group.allowed_days_of_week:
        js_weekday = (local.weekday() + 1) % 7
        if js_weekday not in group.allowed_days_of_week:
            return False
    if group.allowed_hours:
        start = parse_hhmm(group.allowed_hours.start)
        end = parse_hhmm(group.allowed_hours.end)
        moment = local.time().replace(tzinfo=None)
        if start < end:
            return start <= moment < end
        if start > end:
            return moment >= start or moment < end
    return True


def _amount_matches(group: AmountThresholds, ctx: CandidateContext) -> bool:
    if ctx.amount is None:
        return False
    if group.min_amount is not None and ctx.amount < group.min_amount:
        return False
    if group.max_amount is not None and ctx.amount > group.max_amount:
        return False
    return True


def _customer_matches(group: CustomerFilters, ctx: CandidateContext) -> bool:
    if ctx.customer_id in group.blacklisted_customers:
        return False
    if group.allowed_customer_types:
        customer_type = CustomerType.RETURNING if ctx.completed_reservations else CustomerType.NEW
        if customer_type not in group.allowed_customer_types:
            return False
    return ctx.completed_reservations >= group.min_booking_history


def _booking_matches(group: BookingConditions, ctx: CandidateContext) -> bool:
    if group.max_guests is not None and ctx.quantity > group.max_guests:
        return False
    advance_hours = (ctx.starts_at - ctx.now).total_seconds() / 3600
    if group.min_advance_hours is not None and advance_hours < group.min_advance_hours:
        return False
    if group.max_advance_hours is not None and advance_hours > group.max_advance_hours:
        return False
    if group.allowed_payment_methods:
        return PaymentMethod(ctx.payment_method) in group.allowed_payment_methods
    return True


def _availability_matches(group: AvailabilityConditions, ctx: CandidateContext) -> bool:
    if group.require_availability_check and ctx.has_conflict:
        return False
    if group.max_occupancy_percentage is not None and ctx.occupancy_percentage is not None:
        if ctx.occupancy_percentage > group.max_occupancy_percentage:
            return False
    if group.buffer_minutes and ctx.minutes_to_neighbor is not None:
        return ctx.minutes_to_neighbor >= group.buffer_minutes
    return True


_GROUP_EVALUATORS: dict[str, Callable[..., bool]] = {
    "time": _time_matches,
    "amount": _amount_matches,
    "customer": _customer_matches,
    "booking": _booking_matches,
    "availability": _availability_matches,
}


def rule_matches(conditions: RuleConditions, ctx: CandidateContext) -> bool:
    """True when every enabled predicate group is satisfied."""
    for name, evaluate in _GROUP_EVALUATORS.items():
        group = getattr(conditions, name)
        if group.enabled and not evaluate(group, ctx):
            return False
    return True


def select_rule(rules: Iterable[EvaluableRule], ctx: CandidateContext) -> RuleDecision:
    """First enabled rule, by ascending priority, that matches the candidate."""
    if AssetType(ctx.asset_type) in MANUAL_APPROVAL_ASSET_TYPES:
        return RuleDecision(False, reason="packages always require manual approval")

    # sorted() is stable, so equal priorities keep the caller's order
    for rule in sorted(rules, key=lambda r: r.priority):
        if not rule.enabled:
            continue
        if rule_matches(rule.conditions, ctx):
            return RuleDecision(True, rule.id, reason="rule matched")

    return RuleDecision(False, reason="no rule matched")
