"""Reservation-related Pydantic schemas."""

from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from reservations.domain.payment_state import PaymentMethod, PaymentStatus
from reservations.domain.reservation_state import ReservationStatus
from reservations.schemas.details import AssetDetails

_HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class CreationMethod(str, Enum):
    """How a reservation entered the system."""

    TRAVELER = "traveler"
    ADMIN_DIRECT = "admin_direct"
    ADMIN_PHONE = "admin_phone"
    ADMIN_WALKIN = "admin_walkin"
    ADMIN_GROUP = "admin_group"
    ADMIN_CONVERSION = "admin_conversion"


class ReservationTiming(BaseModel):
    """Either a start/end range or a local date + time slot."""

    start_at: datetime | None = None
    end_at: datetime | None = None
    slot_date: date | None = None
    slot_time: str | None = Field(None, pattern=_HHMM_PATTERN)

    @field_validator("start_at", "end_at")
    @classmethod
    def require_timezone(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            raise ValueError("timestamps must include a timezone offset")
        return v

    def has_range(self) -> bool:
        return self.start_at is not None or self.end_at is not None

    def has_slot(self) -> bool:
        return self.slot_date is not None or self.slot_time is not None


class ReservationCreate(ReservationTiming):
    """Schema for creating a reservation.

    Travelers book for themselves. Staff (partner, employee, master) book on
    behalf of ``customer_id`` and may fix the total or confirm immediately.
    """

    asset_id: UUID
    details: AssetDetails
    quantity: int = Field(default=1, ge=1)
    payment_method: PaymentMethod = PaymentMethod.CARD
    special_requests: str | None = Field(None, max_length=1000)

    # Staff-only fields
    customer_id: UUID | None = None
    customer_name: str | None = Field(None, max_length=200)
    customer_email: str | None = Field(None, max_length=255)
    customer_phone: str | None = Field(None, max_length=40)
    creation_method: CreationMethod | None = None
    total_amount: int | None = Field(None, ge=0)
    auto_confirm: bool = False
    internal_notes: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_timing(self) -> "ReservationCreate":
        if self.has_range() == self.has_slot():
            raise ValueError("provide either start_at/end_at or slot_date/slot_time")
        if self.has_range():
            if self.start_at is None or self.end_at is None:
                raise ValueError("start_at and end_at are both required")
            if self.end_at <= self.start_at:
                raise ValueError("end_at must be after start_at")
        elif self.slot_date is None or self.slot_time is None:
            raise ValueError("slot_date and slot_time are both required")
        return self


class ReservationUpdate(ReservationTiming):
    """Schema for staff edits to a live reservation."""

    quantity: int | None = Field(None, ge=1)
    total_amount: int | None = Field(None, ge=0)
    payment_method: PaymentMethod | None = None
    special_requests: str | None = Field(None, max_length=1000)
    internal_notes: str | None = Field(None, max_length=2000)
    customer_name: str | None = Field(None, max_length=200)
    customer_email: str | None = Field(None, max_length=255)
    customer_phone: str | None = Field(None, max_length=40)


class ApproveRequest(BaseModel):
    final_price: int | None = Field(None, gt=0)


class PriceConfirmRequest(BaseModel):
    final_price: int = Field(..., gt=0)


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class ReservationResponse(BaseModel):
    """Schema for reservation response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    confirmation_code: str
    asset_type: str
    asset_id: UUID
    customer_id: UUID
    customer_name: str | None
    start_at: datetime
    end_at: datetime
    slot_date: date | None
    slot_time: str | None
    quantity: int

    status: ReservationStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    estimated_price: int
    final_price: int | None
    paid_amount: int
    currency: str
    payment_deadline: datetime | None
    payment_link_url: str | None

    creation_method: CreationMethod
    details: dict[str, Any]
    special_requests: str | None
    cancellation_reason: str | None
    rejection_reason: str | None
    auto_confirmed: bool
    matched_rule_id: UUID | None
    version: int

    created_at: datetime
    updated_at: datetime
    confirmed_at: datetime | None
    paid_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    no_show_at: datetime | None
    canceled_at: datetime | None
    rejected_at: datetime | None
    expired_at: datetime | None


class ReservationListResponse(BaseModel):
    items: list[ReservationResponse]
    total: int


class ChangeHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reservation_id: UUID
    change_type: str
    description: str
    actor_id: UUID | None
    actor_role: str | None
    from_status: str | None
    to_status: str | None
    created_at: datetime
