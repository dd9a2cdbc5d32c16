"""Append-only enforcement for audit records using SQLAlchemy events."""

import logging
from datetime import UTC, datetime

from sqlalchemy import event

from reservations.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_registered = False


class ImmutabilityViolationError(ValidationError):
    """Raised when attempting to modify an immutable record or field."""

    code = "immutability_violation"

    def __init__(self, model_name: str, operation: str, record_id: str):
        self.model_name = model_name
        self.operation = operation
        self.record_id = record_id
        super().__init__(
            f"Immutability violation: Cannot {operation} {model_name} record {record_id}."
        )


def _log_immutability_violation(model_name: str, operation: str, record_id: str) -> None:
    """Log immutability violation for audit purposes."""
    logger.error(
        f"IMMUTABILITY_VIOLATION: Attempted to {operation} {model_name} "
        f"record_id={record_id} at {datetime.now(UTC).isoformat()}"
    )


def register_immutability_enforcement() -> None:
    """Register SQLAlchemy event listeners for append-only tables.

    Must be called after models are imported but before session use.
    Safe to call more than once.
    """
    global _registered
    if _registered:
        return

    from reservations.models.reservation import ChangeHistoryEntry, Reservation

    # ============ Reservation: lifecycle states, never deleted ============

    @event.listens_for(Reservation, "before_delete")
    def prevent_reservation_delete(mapper, connection, target):
        """Reservations end in a terminal status instead of being deleted."""
        _log_immutability_violation("Reservation", "DELETE", str(target.id))
        raise ImmutabilityViolationError("Reservation", "DELETE", str(target.id))

    # ============ ChangeHistoryEntry: Append-Only ============

    @event.listens_for(ChangeHistoryEntry, "before_update")
    def prevent_history_update(mapper, connection, target):
        """Prevent updates to ChangeHistoryEntry (append-only)."""
        _log_immutability_violation("ChangeHistoryEntry", "UPDATE", str(target.id))
        raise ImmutabilityViolationError("ChangeHistoryEntry", "UPDATE", str(target.id))

    @event.listens_for(ChangeHistoryEntry, "before_delete")
    def prevent_history_delete(mapper, connection, target):
        """Prevent deletion of ChangeHistoryEntry (append-only)."""
        _log_immutability_violation("ChangeHistoryEntry", "DELETE", str(target.id))
        raise ImmutabilityViolationError("ChangeHistoryEntry", "DELETE", str(target.id))

    _registered = True
    logger.info("Immutability enforcement registered for reservation history")
