"""Payment lifecycle, orthogonal to the reservation status."""

from enum import Enum

from reservations.core.exceptions import InvalidTransitionError


class PaymentStatus(str, Enum):
    """Payment status of a reservation."""

    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    CANCELED = "canceled"


class PaymentMethod(str, Enum):
    """How the customer settles the reservation."""

    CARD = "card"
    PIX = "pix"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    DEFERRED = "deferred"


class PaymentOutcome(str, Enum):
    """Payment lifecycle events reported by a gateway."""

    LINK_CREATED = "link_created"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


# Methods collected through a gateway payment link
ONLINE_PAYMENT_METHODS = frozenset({PaymentMethod.CARD, PaymentMethod.PIX})

PAYMENT_TRANSITIONS = {
    PaymentStatus.NOT_REQUIRED: {PaymentStatus.PENDING},
    PaymentStatus.PENDING: {
        PaymentStatus.PROCESSING,
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELED,
        PaymentStatus.NOT_REQUIRED,
    },
    PaymentStatus.PROCESSING: {
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELED,
    },
    # A failed attempt can be retried through the same or a new link
    PaymentStatus.FAILED: {
        PaymentStatus.PENDING,
        PaymentStatus.PROCESSING,
        PaymentStatus.PAID,
        PaymentStatus.CANCELED,
    },
    PaymentStatus.PAID: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.PARTIALLY_REFUNDED: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
    PaymentStatus.CANCELED: set(),
}


def assert_payment_transition(current: str, target: str) -> None:
    """Reject payment status changes outside the lifecycle.

    Keeping the current status is always allowed.
    """
    current = PaymentStatus(current)
    target = PaymentStatus(target)
    if current == target:
        return
    if target not in PAYMENT_TRANSITIONS[current]:
        raise InvalidTransitionError(
            current.value,
            target.value,
            detail=f"Invalid payment transition: {current.value} → {target.value}",
        )


def requires_online_payment(method: str, amount: int | None) -> bool:
    """Whether a payment link has to be issued for this amount and method."""
    return bool(amount) and amount > 0 and PaymentMethod(method) in ONLINE_PAYMENT_METHODS


def payment_status_on_close(current: str) -> PaymentStatus:
    """Payment status after a cancellation or rejection."""
    current = PaymentStatus(current)
    if current in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
        return PaymentStatus.CANCELED
    return current


def payment_status_on_expiry(current: str) -> PaymentStatus:
    """Payment status after the payment window lapses.

    A failed payment keeps its status so the failure stays visible.
    """
    current = PaymentStatus(current)
    if current == PaymentStatus.FAILED:
        return current
    return PaymentStatus.CANCELED
