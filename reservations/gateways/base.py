"""Base payment gateway interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from reservations.domain.payment_state import PaymentOutcome


class GatewayType(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    MANUAL = "manual"


@dataclass
class PaymentLinkResult:
    """Result of issuing a payment link."""

    success: bool
    url: str | None = None
    link_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


@dataclass
class RefundResult:
    """Result of a refund operation."""

    success: bool
    refund_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


@dataclass
class PaymentWebhookEvent:
    """A gateway notification normalized to a payment outcome.

    ``reference`` is whatever the gateway echoes back to identify the
    reservation: its id, its confirmation code, or the payment link id.
    """

    outcome: PaymentOutcome
    external_payment_id: str
    reference: str | None
    amount: int | None = None
    currency: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""
        pass

    @abstractmethod
    async def create_payment_link(
        self,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        expires_at: datetime | None = None,
        metadata: dict | None = None,
    ) -> PaymentLinkResult:
        """Issue a payment link for a fixed amount.

        Args:
            amount: Amount in smallest currency unit (centavos)
            currency: Currency code (BRL)
            reference_id: Reservation id, echoed back in webhooks
            description: Line item shown to the customer
            expires_at: Payment deadline, informational for most gateways
            metadata: Additional metadata

        Returns:
            PaymentLinkResult with the link details
        """
        pass

    @abstractmethod
    async def process_refund(
        self,
        transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process a refund.

        Args:
            transaction_id: Original payment transaction ID
            amount: Refund amount in smallest currency unit
            reason: Refund reason

        Returns:
            RefundResult with refund details
        """
        pass

    @abstractmethod
    def parse_webhook(
        self,
        payload: bytes,
        signature: str | None,
    ) -> PaymentWebhookEvent | None:
        """Verify a webhook and normalize it.

        Args:
            payload: Raw request body
            signature: Webhook signature header

        Returns:
            The normalized event, or None if the signature is invalid or
            the event carries no payment outcome
        """
        pass
