"""Webhook endpoints for payment gateways."""

import logging

from fastapi import APIRouter, Header, HTTPException, Request, status

from reservations.api.deps import DbSession
from reservations.core.exceptions import NotFoundError
from reservations.gateways.base import GatewayType
from reservations.schemas.payment import PaymentEventResponse
from reservations.schemas.reservation import ReservationResponse
from reservations.services.gateway_service import gateway_service
from reservations.services.payment_handler import payment_handler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/payments/{gateway}", response_model=PaymentEventResponse, status_code=status.HTTP_200_OK)
async def payment_webhook(
    gateway: GatewayType,
    request: Request,
    db: DbSession,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
) -> PaymentEventResponse:
    """Apply a gateway payment notification.

    Deliveries are at-least-once; replays are acknowledged as duplicates.
    """
    # Get raw body for signature verification
    payload = await request.body()

    event = gateway_service.parse_webhook(gateway, payload, stripe_signature)
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or unsupported webhook",
        )

    if not event.reference:
        logger.info(f"{gateway.value} {event.outcome.value} event without a reservation reference ignored")
        return PaymentEventResponse(result="ignored")

    try:
        result = await payment_handler.on_payment_event(
            db,
            reference=event.reference,
            outcome=event.outcome,
            external_payment_id=event.external_payment_id,
            amount=event.amount,
            currency=event.currency,
            gateway=gateway.value,
            payload=event.raw,
        )
    except NotFoundError:
        # Acknowledge so the gateway stops retrying a reference we will never know
        logger.warning(f"{gateway.value} webhook for unknown reference {event.reference}")
        return PaymentEventResponse(result="unknown_reference")

    return PaymentEventResponse(
        duplicate=result.duplicate,
        applied=result.applied,
        result=result.result,
        reservation=ReservationResponse.model_validate(result.reservation),
    )
