"""Database models."""

from reservations.models.asset import Asset
from reservations.models.auto_confirmation import AutoConfirmationRule
from reservations.models.outbox import OutboxMessage
from reservations.models.payment import PaymentEvent, PaymentLink
from reservations.models.reservation import ChangeHistoryEntry, Reservation
from reservations.models.voucher import Voucher

__all__ = [
    # Asset
    "Asset",
    # Reservation
    "Reservation",
    "ChangeHistoryEntry",
    # Auto-confirmation
    "AutoConfirmationRule",
    # Payment
    "PaymentEvent",
    "PaymentLink",
    "Voucher",
    # Side effects
    "OutboxMessage",
]
