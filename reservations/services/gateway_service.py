"""Payment gateway service.

Routes payment operations to the appropriate gateway adapter.
No business logic here - only gateway coordination.
"""

from datetime import datetime

from reservations.config import settings
from reservations.gateways.base import (
    GatewayType,
    PaymentGateway,
    PaymentLinkResult,
    PaymentWebhookEvent,
    RefundResult,
)
from reservations.gateways.manual import ManualGateway
from reservations.gateways.stripe_gateway import StripeGateway


def _is_production() -> bool:
    """Check if running in production environment."""
    return settings.environment == "production"


def _assert_production_for_real_gateway(gateway_type: GatewayType) -> None:
    """Block live gateway operations in non-production environments.

    Stripe test-mode keys are allowed everywhere.

    Raises:
        RuntimeError: If attempting a live gateway operation outside production
    """
    if gateway_type != GatewayType.STRIPE or _is_production():
        return
    if (settings.stripe_secret_key or "").startswith("sk_test_"):
        return
    raise RuntimeError(
        f"Cannot execute live {gateway_type.value} gateway operations "
        f"in {settings.environment} environment. Set ENVIRONMENT=production or use a test key."
    )


class GatewayService:
    """Service for managing payment gateway operations."""

    def __init__(self):
        self._gateways: dict[GatewayType, PaymentGateway] = {}

    def _get_gateway(self, gateway_type: str | GatewayType) -> PaymentGateway:
        """Get or create gateway instance."""
        if isinstance(gateway_type, str):
            try:
                gateway_type = GatewayType(gateway_type)
            except ValueError:
                gateway_type = GatewayType.MANUAL

        if gateway_type not in self._gateways:
            if gateway_type == GatewayType.STRIPE:
                self._gateways[gateway_type] = StripeGateway()
            else:
                self._gateways[gateway_type] = ManualGateway()

        return self._gateways[gateway_type]

    def register_gateway(self, gateway: PaymentGateway) -> None:
        """Install a gateway instance, replacing the default adapter."""
        self._gateways[gateway.gateway_type] = gateway

    async def create_payment_link(
        self,
        gateway_type: str | GatewayType,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        expires_at: datetime | None = None,
        metadata: dict | None = None,
    ) -> PaymentLinkResult:
        """Issue a payment link via specified gateway."""
        gateway = self._get_gateway(gateway_type)
        # Environment safety: block live gateway in non-production
        _assert_production_for_real_gateway(gateway.gateway_type)
        return await gateway.create_payment_link(
            amount=amount,
            currency=currency,
            reference_id=reference_id,
            description=description,
            expires_at=expires_at,
            metadata=metadata,
        )

    async def process_refund(
        self,
        gateway_type: str | GatewayType,
        transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process refund via gateway."""
        gateway = self._get_gateway(gateway_type)
        # Environment safety: block live gateway in non-production
        _assert_production_for_real_gateway(gateway.gateway_type)
        return await gateway.process_refund(
            transaction_id=transaction_id,
            amount=amount,
            reason=reason,
        )

    def parse_webhook(
        self,
        gateway_type: str | GatewayType,
        payload: bytes,
        signature: str | None,
    ) -> PaymentWebhookEvent | None:
        """Verify and normalize a webhook from gateway."""
        gateway = self._get_gateway(gateway_type)
        return gateway.parse_webhook(payload, signature)


# Singleton instance
gateway_service = GatewayService()
