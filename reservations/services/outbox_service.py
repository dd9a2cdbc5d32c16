"""Transactional outbox.

Side effects (payment links, vouchers, notifications, refunds) are
written as rows in the same transaction as the state change that causes
them, then dispatched by a worker once that transaction has committed.
A failed dispatch is retried with backoff and never rolls the
reservation back.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reservations.config import settings
from reservations.core.exceptions import ExternalDependencyError
from reservations.core.idempotency import generate_idempotency_key
from reservations.database import utcnow
from reservations.domain.payment_state import PaymentOutcome, PaymentStatus
from reservations.domain.reservation_state import ReservationStatus, is_terminal
from reservations.models.outbox import OutboxMessage
from reservations.models.reservation import Reservation
from reservations.services.gateway_service import gateway_service
from reservations.services.history_service import history_service
from reservations.services.notification_service import notification_service
from reservations.services.voucher_service import voucher_service

logger = logging.getLogger(__name__)


class OutboxKind:
    """Side effect kinds."""

    PAYMENT_LINK_REQUESTED = "payment_link_requested"
    VOUCHER_REQUESTED = "voucher_requested"
    NOTIFICATION = "notification"
    REFUND_REQUESTED = "refund_requested"


class OutboxStatus:
    """Message dispatch status."""

    PENDING = "pending"
    DISPATCHED = "dispatched"
    SKIPPED = "skipped"
    FAILED = "failed"


_VOUCHER_STATUSES = {
    ReservationStatus.CONFIRMED.value,
    ReservationStatus.IN_PROGRESS.value,
    ReservationStatus.COMPLETED.value,
}


@dataclass
class DrainReport:
    """What one drain pass did."""

    dispatched: int = 0
    skipped: int = 0
    retried: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class OutboxService:
    """Service for enqueuing and dispatching post-commit side effects."""

    # ==================== ENQUEUE ====================

    async def enqueue(
        self,
        db: AsyncSession,
        kind: str,
        reservation_id: UUID | None,
        payload: dict[str, Any],
        dedupe_params: dict[str, Any] | None = None,
    ) -> OutboxMessage | None:
        """Write a side effect into the current transaction.

        Returns:
            The new message, or None if an identical one was already enqueued
        """
        dedupe_key = generate_idempotency_key(
            kind, reservation_id or "-", dedupe_params if dedupe_params is not None else payload
        )
        existing = await db.execute(
            select(OutboxMessage.id).where(OutboxMessage.dedupe_key == dedupe_key)
        )
        if existing.scalar_one_or_none() is not None:
            logger.debug(f"Outbox {kind} for {reservation_id} already enqueued")
            return None

        message = OutboxMessage(
            kind=kind,
            reservation_id=reservation_id,
            payload=payload,
            dedupe_key=dedupe_key,
            status=OutboxStatus.PENDING,
            attempts=0,
            available_at=utcnow(),
        )
        db.add(message)
        return message

    async def request_payment_link(
        self,
        db: AsyncSession,
        reservation: Reservation,
        gateway: str | None = None,
    ) -> OutboxMessage | None:
        """Ask for a payment link for the reservation's binding price."""
        payload = {
            "gateway": gateway or settings.default_payment_gateway,
            "amount": reservation.final_price,
            "currency": reservation.currency,
            "deadline": reservation.payment_deadline.isoformat() if reservation.payment_deadline else None,
        }
        return await self.enqueue(db, OutboxKind.PAYMENT_LINK_REQUESTED, reservation.id, payload)

    async def request_voucher(self, db: AsyncSession, reservation: Reservation) -> OutboxMessage | None:
        """Ask for the reservation's voucher; only the first request is kept."""
        return await self.enqueue(
            db, OutboxKind.VOUCHER_REQUESTED, reservation.id, {}, dedupe_params={}
        )

    async def request_notification(
        self,
        db: AsyncSession,
        reservation: Reservation,
        user_id: UUID | None,
        notification_type: str,
        data: dict[str, Any] | None = None,
        require_status: list[str] | None = None,
    ) -> OutboxMessage | None:
        """Queue a notification.

        Args:
            require_status: Skip delivery if by dispatch time the reservation
                has moved out of these statuses
        """
        if user_id is None:
            return None
        payload = {
            "user_id": str(user_id),
            "type": notification_type,
            "data": {"confirmation_code": reservation.confirmation_code, **(data or {})},
            "require_status": require_status,
        }
        dedupe = {
            "user_id": str(user_id),
            "type": notification_type,
            "status": reservation.status,
            "data": data or {},
        }
        return await self.enqueue(
            db, OutboxKind.NOTIFICATION, reservation.id, payload, dedupe_params=dedupe
        )

    async def request_refund(
        self,
        db: AsyncSession,
        reservation: Reservation,
        gateway: str | None,
        external_payment_id: str,
        amount: int,
        reason: str,
    ) -> OutboxMessage | None:
        """Ask the gateway to return a payment that can no longer be applied."""
        payload = {
            "gateway": gateway or settings.default_payment_gateway,
            "external_payment_id": external_payment_id,
            "amount": amount,
            "reason": reason,
        }
        return await self.enqueue(db, OutboxKind.REFUND_REQUESTED, reservation.id, payload)

    # ==================== DISPATCH ====================

    async def drain(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        now: datetime | None = None,
        batch_size: int | None = None,
    ) -> DrainReport:
        """Dispatch due messages, each in its own transaction."""
        now = now or utcnow()
        report = DrainReport()

        async with session_factory() as db:
            result = await db.execute(
                select(OutboxMessage.id)
                .where(
                    OutboxMessage.status == OutboxStatus.PENDING,
                    OutboxMessage.available_at <= now,
                )
                .order_by(OutboxMessage.created_at)
                .limit(batch_size or settings.outbox_batch_size)
            )
            message_ids = list(result.scalars().all())

        for message_id in message_ids:
            await self._dispatch(session_factory, message_id, now, report)

        if message_ids:
            logger.info(f"Outbox drain: {report.as_dict()}")
        return report

    async def _dispatch(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        message_id: UUID,
        now: datetime,
        report: DrainReport,
    ) -> None:
        async with session_factory() as db:
            message = await self._claim(db, message_id)
            if message is None:
                return

            handler = {
                OutboxKind.PAYMENT_LINK_REQUESTED: self._handle_payment_link,
                OutboxKind.VOUCHER_REQUESTED: self._handle_voucher,
                OutboxKind.NOTIFICATION: self._handle_notification,
                OutboxKind.REFUND_REQUESTED: self._handle_refund,
            }[message.kind]

            try:
                reservation = None
                if message.reservation_id is not None:
                    reservation = await db.get(Reservation, message.reservation_id)
                outcome = await handler(db, message, reservation)
                message.status = outcome
                message.attempts += 1
                message.dispatched_at = now
                message.last_error = None
                await db.commit()
            except Exception as e:
                await db.rollback()
                if isinstance(e, ExternalDependencyError):
                    logger.warning(f"Outbox {message_id} dispatch failed: {e.detail}")
                else:
                    logger.exception(f"Outbox {message_id} dispatch raised")
                await self._record_failure(db, message_id, e, now, report)
                return

        if outcome == OutboxStatus.SKIPPED:
            report.skipped += 1
        else:
            report.dispatched += 1

    async def _claim(self, db: AsyncSession, message_id: UUID) -> OutboxMessage | None:
        result = await db.execute(
            select(OutboxMessage)
            .where(OutboxMessage.id == message_id, OutboxMessage.status == OutboxStatus.PENDING)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _record_failure(
        self,
        db: AsyncSession,
        message_id: UUID,
        error: Exception,
        now: datetime,
        report: DrainReport,
    ) -> None:
        message = await self._claim(db, message_id)
        if message is None:
            return

        message.attempts += 1
        message.last_error = str(getattr(error, "detail", None) or error)[:2000]
        if message.attempts >= settings.outbox_max_attempts:
            message.status = OutboxStatus.FAILED
            report.failed += 1
            logger.error(
                f"Outbox {message.kind} {message_id} gave up after {message.attempts} attempts"
            )
        else:
            delay = settings.outbox_backoff_seconds * 2 ** (message.attempts - 1)
            message.available_at = now + timedelta(seconds=delay)
            report.retried += 1
        await db.commit()

    # ==================== HANDLERS ====================

    async def _handle_payment_link(
        self,
        db: AsyncSession,
        message: OutboxMessage,
        reservation: Reservation | None,
    ) -> str:
        payload = message.payload
        amount = payload["amount"]
        if (
            reservation is None
            or is_terminal(reservation.status)
            or reservation.payment_status not in (PaymentStatus.PENDING.value, PaymentStatus.FAILED.value)
            or reservation.final_price != amount
        ):
            return OutboxStatus.SKIPPED

        deadline = datetime.fromisoformat(payload["deadline"]) if payload.get("deadline") else None
        result = await gateway_service.create_payment_link(
            payload["gateway"],
            amount=amount,
            currency=payload["currency"],
            reference_id=str(reservation.id),
            description=f"Reserva {reservation.confirmation_code}",
            expires_at=deadline,
            metadata={
                "confirmation_code": reservation.confirmation_code,
                "link_request_id": str(message.id),
            },
        )
        if not result.success:
            raise ExternalDependencyError(payload["gateway"], result.error_message)

        from reservations.services.payment_handler import payment_handler

        await payment_handler.on_payment_event(
            db,
            reference=str(reservation.id),
            outcome=PaymentOutcome.LINK_CREATED,
            external_payment_id=result.link_id or result.url,
            amount=amount,
            currency=payload["currency"],
            gateway=payload["gateway"],
            payload={"url": result.url, "expires_at": payload.get("deadline")},
        )
        return OutboxStatus.DISPATCHED

    async def _handle_voucher(
        self,
        db: AsyncSession,
        message: OutboxMessage,
        reservation: Reservation | None,
    ) -> str:
        if reservation is None or reservation.status not in _VOUCHER_STATUSES:
            return OutboxStatus.SKIPPED

        voucher = await voucher_service.issue_voucher(db, reservation)
        await self.request_notification(
            db,
            reservation,
            reservation.customer_id,
            notification_service.VOUCHER_ISSUED,
            {"voucher_number": voucher.voucher_number},
        )
        return OutboxStatus.DISPATCHED

    async def _handle_notification(
        self,
        db: AsyncSession,
        message: OutboxMessage,
        reservation: Reservation | None,
    ) -> str:
        payload = message.payload
        require_status = payload.get("require_status")
        if require_status and (reservation is None or reservation.status not in require_status):
            return OutboxStatus.SKIPPED

        await notification_service.notify(
            payload["user_id"],
            payload["type"],
            payload.get("data"),
            reservation_id=message.reservation_id,
        )
        return OutboxStatus.DISPATCHED

    async def _handle_refund(
        self,
        db: AsyncSession,
        message: OutboxMessage,
        reservation: Reservation | None,
    ) -> str:
        payload = message.payload
        result = await gateway_service.process_refund(
            payload["gateway"],
            transaction_id=payload["external_payment_id"],
            amount=payload["amount"],
            reason=payload["reason"],
        )
        if not result.success:
            raise ExternalDependencyError(payload["gateway"], result.error_message)

        if reservation is not None:
            await history_service.record(
                db,
                reservation,
                change_type="refund_issued",
                description=f"Refund of {payload['amount']} requested from {payload['gateway']}",
                data={"refund_id": result.refund_id, "external_payment_id": payload["external_payment_id"]},
            )
        return OutboxStatus.DISPATCHED


outbox_service = OutboxService()
