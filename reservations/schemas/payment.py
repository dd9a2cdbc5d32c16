"""Payment-related Pydantic schemas."""

from pydantic import BaseModel, Field, field_validator

from reservations.domain.payment_state import PaymentOutcome
from reservations.schemas.reservation import ReservationResponse


class PaymentEventResponse(BaseModel):
    """Outcome of applying a gateway callback."""

    received: bool = True
    duplicate: bool = False
    applied: bool = False
    result: str
    reservation: ReservationResponse | None = None


class PaymentRecordRequest(BaseModel):
    """A payment outcome recorded by staff (bank transfer, PIX key, cash)."""

    outcome: PaymentOutcome
    external_payment_id: str = Field(..., min_length=1, max_length=255)
    amount: int | None = Field(None, gt=0)

    @field_validator("outcome")
    @classmethod
    def validate_outcome(cls, v: PaymentOutcome) -> PaymentOutcome:
        if v not in (PaymentOutcome.PAID, PaymentOutcome.FAILED):
            raise ValueError("only paid or failed outcomes can be recorded")
        return v
