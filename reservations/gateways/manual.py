"""Manual payment gateway adapter for bank transfers and PIX keys."""

from datetime import datetime
from urllib.parse import urlencode

from reservations.config import settings
from reservations.gateways.base import (
    GatewayType,
    PaymentGateway,
    PaymentLinkResult,
    PaymentWebhookEvent,
    RefundResult,
)


class ManualGateway(PaymentGateway):
    """Manual payment gateway.

    Links point at the bank-transfer instructions page and payments are
    recorded by staff, so there are no webhooks.
    """

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.MANUAL

    async def create_payment_link(
        self,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        expires_at: datetime | None = None,
        metadata: dict | None = None,
    ) -> PaymentLinkResult:
        """Create manual payment instructions link (always succeeds).

        Each link request gets its own id, so a repriced reservation's new
        link is never mistaken for a redelivery of the old one.
        """
        link_id = f"manual_{reference_id}"
        request_id = (metadata or {}).get("link_request_id")
        if request_id:
            link_id = f"{link_id}_{request_id}"
        query = urlencode({"reservation": reference_id, "amount": amount, "currency": currency})
        return PaymentLinkResult(
            success=True,
            url=f"{settings.manual_payment_url}?{query}",
            link_id=link_id,
            raw_response={
                "type": "bank_transfer",
                "status": "pending_verification",
                "expires_at": expires_at.isoformat() if expires_at else None,
            },
        )

    async def process_refund(
        self,
        transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process manual refund (requires admin action)."""
        return RefundResult(
            success=True,
            refund_id=f"refund_{transaction_id}",
            raw_response={
                "type": "manual_refund",
                "status": "pending",
                "note": "Refund must be sent manually via bank transfer",
                "amount": amount,
                "reason": reason,
            },
        )

    def parse_webhook(
        self,
        payload: bytes,
        signature: str | None,
    ) -> PaymentWebhookEvent | None:
        """Manual gateway doesn't have webhooks."""
        return None
