"""Reservation state machine.

Statuses, the events that move between them, and the payment statuses
each reservation status may be paired with. Applying a transition to a
persisted reservation lives in ``reservations.services.transition_service``.
"""

from enum import Enum

from reservations.core.exceptions import InvalidTransitionError
from reservations.domain.payment_state import PaymentStatus


class ReservationStatus(str, Enum):
    """Reservation lifecycle status."""

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELED = "canceled"
    EXPIRED = "expired"
    NO_SHOW = "no_show"


class ReservationEvent(str, Enum):
    """Events that drive reservation transitions."""

    APPROVE = "approve"
    REJECT = "reject"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_WINDOW_ELAPSED = "payment_window_elapsed"
    START = "start"
    FINISH = "finish"
    CANCEL = "cancel"


_S = ReservationStatus
_E = ReservationEvent
_P = PaymentStatus

TERMINAL_STATUSES = frozenset({_S.COMPLETED, _S.REJECTED, _S.CANCELED, _S.EXPIRED, _S.NO_SHOW})

# Every live reservation holds its asset, including those still in checkout
HOLDING_STATUSES = frozenset(s for s in ReservationStatus if s not in TERMINAL_STATUSES)

AWAITING_PAYMENT_STATUSES = frozenset({_S.DRAFT, _S.AWAITING_CONFIRMATION, _S.AWAITING_PAYMENT})

RESERVATION_TRANSITIONS: dict[ReservationStatus, dict[ReservationEvent, set[ReservationStatus]]] = {
    _S.DRAFT: {
        _E.APPROVE: {_S.CONFIRMED},
        _E.PAYMENT_SUCCEEDED: {_S.CONFIRMED},
        _E.PAYMENT_WINDOW_ELAPSED: {_S.EXPIRED},
        _E.CANCEL: {_S.CANCELED},
    },
    _S.PENDING_APPROVAL: {
        _E.APPROVE: {_S.CONFIRMED, _S.AWAITING_PAYMENT},
        _E.REJECT: {_S.REJECTED},
        _E.CANCEL: {_S.CANCELED},
    },
    _S.AWAITING_CONFIRMATION: {
        _E.PAYMENT_SUCCEEDED: {_S.CONFIRMED},
        _E.PAYMENT_WINDOW_ELAPSED: {_S.EXPIRED},
        _E.CANCEL: {_S.CANCELED},
    },
    _S.AWAITING_PAYMENT: {
        _E.PAYMENT_SUCCEEDED: {_S.CONFIRMED},
        _E.PAYMENT_WINDOW_ELAPSED: {_S.EXPIRED},
        _E.CANCEL: {_S.CANCELED},
    },
    _S.CONFIRMED: {
        _E.START: {_S.IN_PROGRESS},
        # Finishing without ever starting is a no-show
        _E.FINISH: {_S.NO_SHOW},
        _E.CANCEL: {_S.CANCELED},
    },
    _S.IN_PROGRESS: {
        _E.FINISH: {_S.COMPLETED},
        _E.CANCEL: {_S.CANCELED},
    },
    _S.COMPLETED: {},
    _S.REJECTED: {},
    _S.CANCELED: {},
    _S.EXPIRED: {},
    _S.NO_SHOW: {},
}

_SETTLED = {_P.PAID, _P.PARTIALLY_REFUNDED, _P.REFUNDED}
_OPEN = {_P.NOT_REQUIRED, _P.PENDING, _P.PROCESSING, _P.FAILED}

VALID_PAYMENT_STATUSES: dict[ReservationStatus, frozenset[PaymentStatus]] = {
    _S.DRAFT: frozenset(_OPEN),
    _S.PENDING_APPROVAL: frozenset({_P.NOT_REQUIRED, _P.PENDING}),
    _S.AWAITING_CONFIRMATION: frozenset({_P.PENDING, _P.PROCESSING, _P.FAILED}),
    _S.AWAITING_PAYMENT: frozenset({_P.PENDING, _P.PROCESSING, _P.FAILED}),
    _S.CONFIRMED: frozenset(_OPEN | {_P.PAID, _P.PARTIALLY_REFUNDED}),
    _S.IN_PROGRESS: frozenset(_OPEN | {_P.PAID, _P.PARTIALLY_REFUNDED}),
    _S.COMPLETED: frozenset(_OPEN | _SETTLED),
    _S.NO_SHOW: frozenset(_OPEN | _SETTLED),
    _S.REJECTED: frozenset({_P.NOT_REQUIRED, _P.CANCELED, _P.REFUNDED}),
    _S.CANCELED: frozenset({_P.NOT_REQUIRED, _P.CANCELED, _P.FAILED} | _SETTLED),
    _S.EXPIRED: frozenset({_P.CANCELED, _P.FAILED}),
}

# Timestamp column stamped when a status is entered
STATUS_TIMESTAMPS = {
    _S.CONFIRMED: "confirmed_at",
    _S.IN_PROGRESS: "started_at",
    _S.COMPLETED: "completed_at",
    _S.NO_SHOW: "no_show_at",
    _S.CANCELED: "canceled_at",
    _S.REJECTED: "rejected_at",
    _S.EXPIRED: "expired_at",
}


def is_terminal(status: str) -> bool:
    return ReservationStatus(status) in TERMINAL_STATUSES


def allowed_targets(current: str, event: str) -> set[ReservationStatus]:
    """Statuses reachable from ``current`` on ``event``."""
    return RESERVATION_TRANSITIONS[ReservationStatus(current)].get(ReservationEvent(event), set())


def assert_reservation_transition(current: str, event: str, target: str) -> None:
    current = ReservationStatus(current)
    event = ReservationEvent(event)
    target = ReservationStatus(target)
    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            current.value,
            target.value,
            event.value,
            detail=f"Reservation is {current.value} and can no longer change",
        )
    if target not in allowed_targets(current, event):
        raise InvalidTransitionError(current.value, target.value, event.value)


def assert_valid_payment_pair(status: str, payment_status: str) -> None:
    status = ReservationStatus(status)
    payment_status = PaymentStatus(payment_status)
    if payment_status not in VALID_PAYMENT_STATUSES[status]:
        raise InvalidTransitionError(
            status.value,
            status.value,
            detail=(
                f"Payment status '{payment_status.value}' is not valid "
                f"for a {status.value} reservation"
            ),
        )


def initial_status(
    *,
    admin_initiated: bool,
    auto_confirm: bool,
    approval_required: bool,
    payment_due_online: bool,
) -> ReservationStatus:
    """Status a reservation is created in."""
    if admin_initiated:
        return _S.CONFIRMED if auto_confirm else _S.DRAFT
    if approval_required or not auto_confirm:
        return _S.PENDING_APPROVAL
    if payment_due_online:
        return _S.AWAITING_CONFIRMATION
    return _S.CONFIRMED


def status_after_approval(payment_due_online: bool) -> ReservationStatus:
    return _S.AWAITING_PAYMENT if payment_due_online else _S.CONFIRMED


def finish_target(current: str) -> ReservationStatus:
    """Where a reservation goes once its window has ended."""
    if ReservationStatus(current) == _S.IN_PROGRESS:
        return _S.COMPLETED
    return _S.NO_SHOW
