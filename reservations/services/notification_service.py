"""Notification service.

Reservation notifications are handed to an external delivery webhook
(email, WhatsApp and push fan-out live behind it). Calls are made only
from the outbox worker, after the state change that caused them has
been committed.
"""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import httpx

from reservations.config import settings
from reservations.core.exceptions import ExternalDependencyError

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for delivering reservation notifications."""

    # Notification types
    RESERVATION_RECEIVED = "reservation_received"
    RESERVATION_REQUESTED = "reservation_requested"
    RESERVATION_CONFIRMED = "reservation_confirmed"
    RESERVATION_REJECTED = "reservation_rejected"
    RESERVATION_CANCELED = "reservation_canceled"
    RESERVATION_EXPIRED = "reservation_expired"
    PAYMENT_LINK_READY = "payment_link_ready"
    PAYMENT_FAILED = "payment_failed"
    VOUCHER_ISSUED = "voucher_issued"

    def __init__(self) -> None:
        """Initialize notification service."""
        self._http_client: httpx.AsyncClient | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.notification_timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def notify(
        self,
        user_id: UUID | str,
        notification_type: str,
        data: dict[str, Any] | None = None,
        reservation_id: UUID | str | None = None,
    ) -> bool:
        """Send a notification to a user.

        Args:
            user_id: Customer or partner to notify
            notification_type: One of the notification type constants
            data: Template variables
            reservation_id: Related reservation ID

        Returns:
            bool: True if delivered, False if no delivery channel is configured

        Raises:
            ExternalDependencyError: If the delivery webhook fails
        """
        if not settings.notification_webhook_url:
            logger.info(
                f"Notification {notification_type} for {user_id} not sent: "
                "no delivery webhook configured"
            )
            return False

        body = {
            "user_id": str(user_id),
            "type": notification_type,
            "reservation_id": str(reservation_id) if reservation_id else None,
            "data": data or {},
            "sent_at": datetime.now(UTC).isoformat(),
        }
        try:
            response = await self.http_client.post(settings.notification_webhook_url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalDependencyError("notifications", str(e))

        logger.info(f"Notification {notification_type} delivered to {user_id}")
        return True


# Singleton instance
notification_service = NotificationService()
