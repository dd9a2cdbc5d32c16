"""Payment lifecycle driving reservation transitions.

Gateway outcomes arrive at least once and in any order. Each one is
claimed in the payment event ledger before it is applied, so replays are
acknowledged without changing anything.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.config import settings
from reservations.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from reservations.core.idempotency import claim_payment_event
from reservations.core.permissions import Actor, require_admin
from reservations.database import utcnow
from reservations.domain.payment_state import (
    PaymentOutcome,
    PaymentStatus,
    payment_status_on_expiry,
    requires_online_payment,
)
from reservations.domain.reservation_state import (
    AWAITING_PAYMENT_STATUSES,
    ReservationEvent,
    ReservationStatus,
    is_terminal,
)
from reservations.models.payment import PaymentEvent, PaymentLink
from reservations.models.reservation import Reservation
from reservations.services.history_service import history_service
from reservations.services.notification_service import notification_service
from reservations.services.outbox_service import outbox_service
from reservations.services.transition_service import (
    apply_payment_status,
    apply_transition,
    flush_reservation,
    get_reservation_for_update,
)

logger = logging.getLogger(__name__)

_AWAITING = {s.value for s in AWAITING_PAYMENT_STATUSES}
_OPEN_PAYMENT = {PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value, PaymentStatus.FAILED.value}


@dataclass
class PaymentEventResult:
    """How a payment event was handled."""

    reservation: Reservation
    duplicate: bool
    applied: bool
    result: str


class PaymentHandler:
    """Applies price confirmations, gateway outcomes and payment deadlines."""

    # ==================== PRICE CONFIRMATION ====================

    @require_admin
    async def on_price_confirmed(
        self,
        db: AsyncSession,
        actor: Actor,
        reservation_id: UUID,
        final_price: int,
        now: datetime | None = None,
    ) -> Reservation:
        """Fix the binding price of a pending reservation and open its payment window.

        Raises:
            ValidationError: If the price is not positive
            InvalidTransitionError: If the reservation is not pending approval
        """
        if final_price <= 0:
            raise ValidationError("Final price must be greater than zero")

        now = now or utcnow()
        reservation = await get_reservation_for_update(db, reservation_id)
        if reservation.status != ReservationStatus.PENDING_APPROVAL.value:
            raise InvalidTransitionError(
                reservation.status,
                ReservationStatus.AWAITING_PAYMENT.value,
                ReservationEvent.APPROVE.value,
                detail=f"Only pending reservations can have their price confirmed (is {reservation.status})",
                current_state=reservation.snapshot(),
            )

        previous_price = reservation.final_price
        reservation.final_price = final_price
        data = {
            "estimated_price": reservation.estimated_price,
            "previous_final_price": previous_price,
            "final_price": final_price,
        }

        if not requires_online_payment(reservation.payment_method, final_price):
            await apply_transition(
                db,
                reservation,
                ReservationEvent.APPROVE,
                ReservationStatus.CONFIRMED,
                payment_status=PaymentStatus.NOT_REQUIRED,
                actor=actor,
                change_type="price_confirmed",
                description=(
                    f"Price confirmed at {final_price} {reservation.currency}; "
                    f"paid on site by {reservation.payment_method}"
                ),
                data=data,
                now=now,
            )
            await self.after_confirmation(db, reservation)
            return reservation

        reservation.payment_deadline = now + timedelta(
            hours=settings.price_confirmation_payment_window_hours
        )
        await apply_transition(
            db,
            reservation,
            ReservationEvent.APPROVE,
            ReservationStatus.AWAITING_PAYMENT,
            payment_status=PaymentStatus.PENDING,
            actor=actor,
            change_type="price_confirmed",
            description=(
                f"Price confirmed at {final_price} {reservation.currency}; "
                f"payment due by {reservation.payment_deadline.isoformat()}"
            ),
            data={**data, "payment_deadline": reservation.payment_deadline.isoformat()},
            now=now,
        )
        await outbox_service.request_payment_link(db, reservation)
        return reservation

    # ==================== GATEWAY OUTCOMES ====================

    async def on_payment_event(
        self,
        db: AsyncSession,
        reference: str | UUID,
        outcome: PaymentOutcome,
        external_payment_id: str,
        amount: int | None = None,
        currency: str | None = None,
        gateway: str | None = None,
        payload: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> PaymentEventResult:
        """Apply a gateway outcome exactly once.

        Args:
            db: Database session
            reference: Reservation id, confirmation code or payment link id
            outcome: What the gateway reports
            external_payment_id: Gateway's id for the payment or link
            amount: Amount reported, in minor units
            currency: Currency reported
            gateway: Gateway name
            payload: Extra event details kept in the ledger
            now: Event time

        Returns:
            PaymentEventResult; duplicates come back with ``duplicate=True``
        """
        now = now or utcnow()
        outcome = PaymentOutcome(outcome)
        reservation = await self._resolve(db, reference)

        event, is_new = await claim_payment_event(
            db,
            reservation_id=reservation.id,
            outcome=outcome.value,
            external_payment_id=external_payment_id,
            gateway=gateway,
            amount=amount,
            currency=currency,
            payload=payload,
        )
        if not is_new:
            logger.info(
                f"Duplicate {outcome.value} event {external_payment_id} for reservation {reservation.id}"
            )
            return PaymentEventResult(reservation, True, event.applied, event.result or "duplicate")

        handler = {
            PaymentOutcome.LINK_CREATED: self._on_link_created,
            PaymentOutcome.PROCESSING: self._on_processing,
            PaymentOutcome.PAID: self._on_paid,
            PaymentOutcome.FAILED: self._on_failed,
            PaymentOutcome.EXPIRED: self._on_expired,
        }[outcome]
        result, applied = await handler(db, reservation, event, now)

        event.applied = applied
        event.result = result
        await db.flush()
        return PaymentEventResult(reservation, False, applied, result)

    async def _resolve(self, db: AsyncSession, reference: str | UUID) -> Reservation:
        """Find the reservation an event refers to, locked for update."""
        reference = str(reference)
        try:
            return await get_reservation_for_update(db, UUID(reference))
        except (ValueError, NotFoundError):
            pass

        by_code = await db.execute(
            select(Reservation.id).where(Reservation.confirmation_code == reference)
        )
        reservation_id = by_code.scalar_one_or_none()
        if reservation_id is None:
            by_link = await db.execute(
                select(PaymentLink.reservation_id)
                .where(PaymentLink.external_id == reference)
                .limit(1)
            )
            reservation_id = by_link.scalar_one_or_none()
        if reservation_id is None:
            raise NotFoundError("Reservation", reference)
        return await get_reservation_for_update(db, reservation_id)

    async def _on_link_created(
        self,
        db: AsyncSession,
        reservation: Reservation,
        event: PaymentEvent,
        now: datetime,
    ) -> tuple[str, bool]:
        if is_terminal(reservation.status) or reservation.payment_status not in _OPEN_PAYMENT:
            return "ignored_status", False

        url = (event.payload or {}).get("url")
        expires_at = (event.payload or {}).get("expires_at")
        db.add(
            PaymentLink(
                reservation_id=reservation.id,
                gateway=event.gateway or settings.default_payment_gateway,
                external_id=event.external_payment_id,
                url=url,
                amount=event.amount or reservation.final_price or 0,
                currency=event.currency or reservation.currency,
                expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
                created_at=now,
            )
        )
        reservation.payment_link_url = url
        reservation.updated_at = now
        await history_service.record(
            db,
            reservation,
            change_type="payment_link_created",
            description=f"Payment link issued via {event.gateway}",
            data={"url": url, "link_id": event.external_payment_id, "amount": event.amount},
        )
        await flush_reservation(db, reservation)
        await outbox_service.request_notification(
            db,
            reservation,
            reservation.customer_id,
            notification_service.PAYMENT_LINK_READY,
            {"payment_link_url": url, "amount": event.amount, "payment_deadline": expires_at},
            require_status=[reservation.status],
        )
        return "link_recorded", True

    async def _on_processing(
        self,
        db: AsyncSession,
        reservation: Reservation,
        event: PaymentEvent,
        now: datetime,
    ) -> tuple[str, bool]:
        if is_terminal(reservation.status) or reservation.payment_status not in (
            PaymentStatus.PENDING.value,
            PaymentStatus.FAILED.value,
        ):
            return "ignored_status", False

        await apply_payment_status(
            db,
            reservation,
            PaymentStatus.PROCESSING,
            change_type="payment_processing",
            description=f"Payment {event.external_payment_id} is processing",
            now=now,
        )
        return "processing", True

    async def _on_paid(
        self,
        db: AsyncSession,
        reservation: Reservation,
        event: PaymentEvent,
        now: datetime,
    ) -> tuple[str, bool]:
        awaiting = reservation.status in _AWAITING
        confirmed_unpaid = (
            reservation.status == ReservationStatus.CONFIRMED.value
            and reservation.payment_status in _OPEN_PAYMENT
        )
        if not (awaiting or confirmed_unpaid):
            logger.warning(
                f"Payment {event.external_payment_id} received for reservation {reservation.id} "
                f"in status {reservation.status}/{reservation.payment_status}"
            )
            await history_service.record(
                db,
                reservation,
                change_type="payment_ignored",
                description=f"Payment received while {reservation.status}; not applied",
                data={"external_payment_id": event.external_payment_id, "amount": event.amount},
            )
            # Money that cannot be applied is always given back
            if event.amount:
                await outbox_service.request_refund(
                    db,
                    reservation,
                    event.gateway,
                    event.external_payment_id,
                    event.amount,
                    reason=f"Payment received for a {reservation.status} reservation",
                )
                return "refund_requested", False
            return "ignored_status", False

        expected = reservation.final_price
        if expected is None or (event.amount is not None and event.amount != expected):
            logger.warning(
                f"Payment amount mismatch for reservation {reservation.id}: "
                f"received {event.amount}, expected {expected}"
            )
            await history_service.record(
                db,
                reservation,
                change_type="payment_amount_mismatch",
                description=f"Payment of {event.amount} does not match the price of {expected}",
                data={"external_payment_id": event.external_payment_id, "amount": event.amount, "expected": expected},
            )
            return "amount_mismatch", False

        if awaiting and reservation.payment_deadline and now > reservation.payment_deadline:
            # Late payment: the hold is already forfeit, give the money back
            await self._expire(db, reservation, now, reason="Payment received after the deadline")
            await outbox_service.request_refund(
                db,
                reservation,
                event.gateway,
                event.external_payment_id,
                event.amount if event.amount is not None else expected,
                reason="Payment received after the reservation expired",
            )
            return "expired_late_payment", True

        reservation.paid_amount = event.amount if event.amount is not None else expected
        if confirmed_unpaid:
            await apply_payment_status(
                db,
                reservation,
                PaymentStatus.PAID,
                change_type="payment_received",
                description=f"Payment {event.external_payment_id} received",
                data={"amount": reservation.paid_amount},
                now=now,
            )
            await outbox_service.request_voucher(db, reservation)
            return "paid", True

        await apply_transition(
            db,
            reservation,
            ReservationEvent.PAYMENT_SUCCEEDED,
            ReservationStatus.CONFIRMED,
            payment_status=PaymentStatus.PAID,
            change_type="payment_received",
            description=f"Payment {event.external_payment_id} received; reservation confirmed",
            data={"amount": reservation.paid_amount},
            now=now,
        )
        await self.after_confirmation(db, reservation)
        return "confirmed", True

    async def _on_failed(
        self,
        db: AsyncSession,
        reservation: Reservation,
        event: PaymentEvent,
        now: datetime,
    ) -> tuple[str, bool]:
        if is_terminal(reservation.status) or reservation.payment_status not in (
            PaymentStatus.PENDING.value,
            PaymentStatus.PROCESSING.value,
        ):
            return "ignored_status", False

        await apply_payment_status(
            db,
            reservation,
            PaymentStatus.FAILED,
            change_type="payment_failed",
            description=f"Payment {event.external_payment_id} failed",
            now=now,
        )
        await outbox_service.request_notification(
            db,
            reservation,
            reservation.customer_id,
            notification_service.PAYMENT_FAILED,
            {"external_payment_id": event.external_payment_id, "payment_link_url": reservation.payment_link_url},
        )
        return "payment_failed", True

    async def _on_expired(
        self,
        db: AsyncSession,
        reservation: Reservation,
        event: PaymentEvent,
        now: datetime,
    ) -> tuple[str, bool]:
        if reservation.status not in _AWAITING:
            return "ignored_status", False
        await self._expire(db, reservation, now, reason="The gateway closed the payment session")
        return "expired", True

    # ==================== DEADLINES ====================

    async def on_payment_deadline_elapsed(
        self,
        db: AsyncSession,
        reservation_id: UUID,
        now: datetime | None = None,
    ) -> Reservation:
        """Expire the reservation if its payment window has lapsed; otherwise a no-op."""
        reservation = await get_reservation_for_update(db, reservation_id)
        await self.expire_if_due(db, reservation, now or utcnow())
        return reservation

    async def expire_if_due(self, db: AsyncSession, reservation: Reservation, now: datetime) -> bool:
        """Expire an unpaid reservation past its deadline.

        A payment still processing is left for the gateway's final outcome.
        """
        if (
            reservation.status not in _AWAITING
            or reservation.payment_deadline is None
            or now <= reservation.payment_deadline
            or reservation.payment_status not in (PaymentStatus.PENDING.value, PaymentStatus.FAILED.value)
        ):
            return False
        await self._expire(db, reservation, now, reason="Payment deadline elapsed")
        return True

    async def _expire(self, db: AsyncSession, reservation: Reservation, now: datetime, reason: str) -> None:
        await apply_transition(
            db,
            reservation,
            ReservationEvent.PAYMENT_WINDOW_ELAPSED,
            ReservationStatus.EXPIRED,
            payment_status=payment_status_on_expiry(reservation.payment_status),
            change_type="expired",
            description=reason,
            data={"payment_deadline": reservation.payment_deadline.isoformat() if reservation.payment_deadline else None},
            now=now,
        )
        await outbox_service.request_notification(
            db,
            reservation,
            reservation.customer_id,
            notification_service.RESERVATION_EXPIRED,
        )

    async def after_confirmation(
        self,
        db: AsyncSession,
        reservation: Reservation,
        notify_customer: bool = True,
    ) -> None:
        """Request the voucher and tell the customer."""
        await outbox_service.request_voucher(db, reservation)
        if not notify_customer:
            return
        await outbox_service.request_notification(
            db,
            reservation,
            reservation.customer_id,
            notification_service.RESERVATION_CONFIRMED,
        )


payment_handler = PaymentHandler()
