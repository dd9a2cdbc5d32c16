"""Idempotency protection for payment events and side effects."""

import hashlib
import json
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def generate_idempotency_key(
    operation: str,
    entity_id: UUID | str,
    params: dict[str, Any] | None = None,
) -> str:
    """Generate a deterministic idempotency key.

    Args:
        operation: Operation name (e.g., "voucher_requested", "payment_link_requested")
        entity_id: Primary entity ID
        params: Additional parameters to include in key

    Returns:
        SHA256 hash of operation + entity + params
    """
    key_data = {
        "operation": operation,
        "entity_id": str(entity_id),
        "params": params or {},
    }
    key_str = json.dumps(key_data, sort_keys=True, default=str)
    return hashlib.sha256(key_str.encode()).hexdigest()


async def claim_payment_event(
    db: AsyncSession,
    *,
    reservation_id: UUID,
    outcome: str,
    external_payment_id: str,
    gateway: str | None = None,
    amount: int | None = None,
    currency: str | None = None,
    payload: dict[str, Any] | None = None,
):
    """Record a payment event unless the same one was already received.

    The ledger's unique key (reservation, outcome, external payment id)
    makes the claim race-free: a concurrent duplicate loses on insert.

    Returns:
        tuple[PaymentEvent, bool]: The ledger row and whether this call
        created it
    """
    from reservations.models.payment import PaymentEvent

    lookup = select(PaymentEvent).where(
        PaymentEvent.reservation_id == reservation_id,
        PaymentEvent.outcome == outcome,
        PaymentEvent.external_payment_id == external_payment_id,
    )
    existing = (await db.execute(lookup)).scalar_one_or_none()
    if existing is not None:
        return existing, False

    event = PaymentEvent(
        reservation_id=reservation_id,
        outcome=outcome,
        external_payment_id=external_payment_id,
        gateway=gateway,
        amount=amount,
        currency=currency,
        payload=payload,
    )
    try:
        async with db.begin_nested():
            db.add(event)
    except IntegrityError:
        existing = (await db.execute(lookup)).scalar_one_or_none()
        if existing is None:
            raise
        logger.info(
            f"Payment event {outcome}/{external_payment_id} claimed concurrently "
            f"for reservation {reservation_id}"
        )
        return existing, False

    return event, True
