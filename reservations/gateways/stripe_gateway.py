"""Stripe payment gateway adapter."""

import json
import logging
from datetime import datetime

from reservations.config import settings
from reservations.domain.payment_state import PaymentOutcome
from reservations.gateways.base import (
    GatewayType,
    PaymentGateway,
    PaymentLinkResult,
    PaymentWebhookEvent,
    RefundResult,
)

logger = logging.getLogger(__name__)

# Stripe event type -> payment outcome
_EVENT_OUTCOMES = {
    "checkout.session.completed": PaymentOutcome.PAID,
    "checkout.session.async_payment_succeeded": PaymentOutcome.PAID,
    "checkout.session.async_payment_failed": PaymentOutcome.FAILED,
    "checkout.session.expired": PaymentOutcome.EXPIRED,
    "payment_intent.processing": PaymentOutcome.PROCESSING,
    "payment_intent.payment_failed": PaymentOutcome.FAILED,
}


class StripeGateway(PaymentGateway):
    """Stripe payment gateway implementation using Payment Links."""

    def __init__(self):
        self.secret_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    async def create_payment_link(
        self,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        expires_at: datetime | None = None,
        metadata: dict | None = None,
    ) -> PaymentLinkResult:
        """Create a one-off Price and a Payment Link for it."""
        if not self.secret_key:
            return PaymentLinkResult(
                success=False,
                error_message="Stripe not configured",
            )

        try:
            import stripe

            stripe.api_key = self.secret_key

            price = stripe.Price.create(
                currency=currency.lower(),
                unit_amount=amount,
                product_data={"name": description[:250]},
            )
            link_metadata = {"reservation_id": reference_id, **(metadata or {})}
            link = stripe.PaymentLink.create(
                line_items=[{"price": price.id, "quantity": 1}],
                metadata=link_metadata,
                payment_intent_data={"metadata": link_metadata},
                after_completion={
                    "type": "redirect",
                    "redirect": {"url": settings.payment_success_url},
                },
            )

            return PaymentLinkResult(
                success=True,
                url=link.url,
                link_id=link.id,
                raw_response={"id": link.id, "price": price.id},
            )

        except Exception as e:
            logger.warning(f"Stripe payment link creation failed for {reference_id}: {e}")
            return PaymentLinkResult(
                success=False,
                error_message=str(e),
            )

    async def process_refund(
        self,
        transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process Stripe refund."""
        if not self.secret_key:
            return RefundResult(
                success=False,
                error_message="Stripe not configured",
            )

        try:
            import stripe

            stripe.api_key = self.secret_key

            refund = stripe.Refund.create(
                payment_intent=transaction_id,
                amount=amount,
                reason="requested_by_customer",
                metadata={"reason": reason[:500]},
            )

            return RefundResult(
                success=refund.status in ("succeeded", "pending"),
                refund_id=refund.id,
                raw_response={"status": refund.status, "id": refund.id},
            )

        except Exception as e:
            return RefundResult(
                success=False,
                error_message=str(e),
            )

    def parse_webhook(
        self,
        payload: bytes,
        signature: str | None,
    ) -> PaymentWebhookEvent | None:
        """Verify the Stripe signature and map the event to an outcome."""
        if not self.webhook_secret or not signature:
            return None

        try:
            import stripe

            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except Exception as e:
            logger.warning(f"Rejected Stripe webhook: {e}")
            return None

        event = json.loads(payload)
        outcome = _EVENT_OUTCOMES.get(event.get("type"))
        if outcome is None:
            return None

        obj = event.get("data", {}).get("object", {})
        metadata = obj.get("metadata") or {}

        if event["type"].startswith("checkout.session."):
            if outcome == PaymentOutcome.PAID and obj.get("payment_status") not in ("paid", "no_payment_required"):
                # Completed checkout with a delayed method (boleto, bank debit)
                outcome = PaymentOutcome.PROCESSING
            external_id = obj.get("payment_intent") or obj.get("id")
            amount = obj.get("amount_total")
            reference = metadata.get("reservation_id") or obj.get("payment_link")
        else:
            external_id = obj.get("id")
            amount = obj.get("amount")
            reference = metadata.get("reservation_id")

        if not external_id:
            return None

        currency = obj.get("currency")
        return PaymentWebhookEvent(
            outcome=outcome,
            external_payment_id=external_id,
            reference=reference,
            amount=amount,
            currency=currency.upper() if currency else None,
            raw={"id": event.get("id"), "type": event.get("type")},
        )
