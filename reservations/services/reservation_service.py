"""Reservation orchestration: creation, approval, edits and cancellation."""

import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.config import settings
from reservations.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from reservations.core.permissions import (
    Actor,
    Role,
    can_manage_asset,
    is_owner_or_admin,
    require_admin,
)
from reservations.database import utcnow
from reservations.domain.assets import MANUAL_APPROVAL_ASSET_TYPES, AssetType, is_range_asset
from reservations.domain.auto_confirmation import RuleDecision
from reservations.domain.payment_state import (
    ONLINE_PAYMENT_METHODS,
    PaymentMethod,
    PaymentStatus,
    assert_payment_transition,
    payment_status_on_close,
    requires_online_payment,
)
from reservations.domain.pricing import quote_price
from reservations.domain.reservation_state import (
    ReservationEvent,
    ReservationStatus,
    assert_valid_payment_pair,
    initial_status,
    is_terminal,
)
from reservations.domain.time_windows import RequestedWindow, TimeWindow, get_zone, slot_window
from reservations.models.asset import Asset
from reservations.models.auto_confirmation import AutoConfirmationRule
from reservations.models.reservation import ChangeHistoryEntry, Reservation
from reservations.models.voucher import VoucherStatus
from reservations.schemas.reservation import CreationMethod, ReservationCreate, ReservationUpdate
from reservations.services.auto_confirmation_service import (
    ReservationCandidate,
    auto_confirmation_service,
)
from reservations.services.conflict_service import conflict_service
from reservations.services.history_service import history_service
from reservations.services.notification_service import notification_service
from reservations.services.outbox_service import outbox_service
from reservations.services.payment_handler import payment_handler
from reservations.services.transition_service import (
    apply_transition,
    flush_reservation,
    get_reservation_for_update,
)
from reservations.services.voucher_service import voucher_service
from reservations.utils.confirmation_code import generate_confirmation_code

logger = logging.getLogger(__name__)

_UNPAYABLE_EDIT = {
    PaymentStatus.PROCESSING.value,
    PaymentStatus.PAID.value,
    PaymentStatus.REFUNDED.value,
    PaymentStatus.PARTIALLY_REFUNDED.value,
}


class ReservationService:
    """Service for the reservation lifecycle driven by travelers and staff."""

    # ==================== HELPERS ====================

    def _requested_window(
        self,
        asset: Asset,
        start_at: datetime | None,
        end_at: datetime | None,
        slot_date,
        slot_time: str | None,
        quantity: int,
    ) -> RequestedWindow:
        """Normalize the booking timing for the asset's booking mode."""
        if is_range_asset(asset.asset_type):
            if start_at is None or end_at is None:
                raise ValidationError(f"{asset.asset_type} reservations need start_at and end_at")
            return RequestedWindow(
                TimeWindow(start_at.astimezone(UTC), end_at.astimezone(UTC)),
                quantity,
            )

        if slot_date is None or slot_time is None:
            raise ValidationError(f"{asset.asset_type} reservations need slot_date and slot_time")
        window = slot_window(
            slot_date,
            slot_time,
            asset.slot_duration_minutes or settings.default_slot_duration_minutes,
            asset.timezone,
        )
        return RequestedWindow(window, quantity, slot_date, slot_time)

    @staticmethod
    def _check_quantity(asset: Asset, quantity: int) -> None:
        minimum = asset.min_quantity or 1
        if quantity < minimum:
            raise ValidationError(f"At least {minimum} guests are required")
        if asset.max_quantity is not None and quantity > asset.max_quantity:
            raise ValidationError(f"At most {asset.max_quantity} guests are allowed")

    async def _get_for_actor(
        self,
        db: AsyncSession,
        actor: Actor,
        reservation_id: UUID,
        for_update: bool = False,
    ) -> Reservation:
        """Load a reservation the actor is allowed to see."""
        if for_update:
            reservation = await get_reservation_for_update(db, reservation_id)
        else:
            reservation = await db.get(Reservation, reservation_id)
            if reservation is None:
                raise NotFoundError("Reservation", str(reservation_id))

        if not is_owner_or_admin(actor, reservation.customer_id):
            raise AuthorizationError("You can only access your own reservations")
        if actor.role == Role.PARTNER and actor.id != reservation.customer_id:
            asset = await db.get(Asset, reservation.asset_id)
            if not can_manage_asset(actor, asset.partner_id if asset else None):
                raise AuthorizationError("You can only manage reservations for your own assets")
        return reservation

    def _require_status(
        self,
        reservation: Reservation,
        expected: ReservationStatus,
        event: ReservationEvent,
        target: ReservationStatus,
    ) -> None:
        if reservation.status != expected.value:
            detail = None
            if is_terminal(reservation.status):
                detail = f"Reservation is {reservation.status} and can no longer change"
            raise InvalidTransitionError(
                reservation.status,
                target.value,
                event.value,
                detail=detail,
                current_state=reservation.snapshot(),
            )

    # ==================== CREATE ====================

    async def create_reservation(
        self,
        db: AsyncSession,
        actor: Actor,
        data: ReservationCreate,
        now: datetime | None = None,
    ) -> Reservation:
        """Create a reservation.

        Travelers book for themselves and go through the auto-confirmation
        rules. Staff book on behalf of a customer and either confirm at once
        (``auto_confirm``) or leave a draft.

        Raises:
            ValidationError: Malformed request or inactive asset
            AuthorizationError: Traveler using staff-only fields
            ConflictError: The window or slot is taken
        """
        now = now or utcnow()
        admin_initiated = actor.is_admin

        if admin_initiated:
            if data.customer_id is None:
                raise ValidationError("customer_id is required for reservations made by staff")
            customer_id = data.customer_id
            creation_method = data.creation_method or CreationMethod.ADMIN_DIRECT
            if creation_method == CreationMethod.TRAVELER:
                raise ValidationError("Staff reservations need an admin creation method")
            customer_name = data.customer_name
        else:
            if (
                data.total_amount is not None
                or data.auto_confirm
                or data.internal_notes
                or data.creation_method not in (None, CreationMethod.TRAVELER)
                or data.customer_id not in (None, actor.id)
            ):
                raise AuthorizationError("Only staff can book for others, set prices or confirm directly")
            customer_id = actor.id
            creation_method = CreationMethod.TRAVELER
            customer_name = data.customer_name or actor.name

        asset = await conflict_service.lock_asset(db, data.asset_id)
        if not asset.is_active:
            raise ValidationError(f"Asset {asset.id} is not accepting reservations")
        if admin_initiated and not can_manage_asset(actor, asset.partner_id):
            raise AuthorizationError("You can only book your own assets")
        if data.details.asset_type != asset.asset_type:
            raise ValidationError(
                f"Details are for a {data.details.asset_type} but the asset is a {asset.asset_type}"
            )
        self._check_quantity(asset, data.quantity)

        requested = self._requested_window(
            asset, data.start_at, data.end_at, data.slot_date, data.slot_time, data.quantity
        )
        if not admin_initiated and requested.window.start <= now:
            raise ValidationError("Reservations must start in the future")

        if await conflict_service.has_conflict(db, asset, requested):
            raise ConflictError("The selected time is not available for this asset")

        estimated, final = quote_price(asset.asset_type, asset.pricing_mode, asset.unit_price, requested)
        if admin_initiated and data.total_amount is not None:
            final = data.total_amount

        payment_method = PaymentMethod(data.payment_method)
        payment_due_online = requires_online_payment(payment_method, final)
        approval_required = final is None or AssetType(asset.asset_type) in MANUAL_APPROVAL_ASSET_TYPES

        if admin_initiated and data.auto_confirm and final is None:
            raise ValidationError("total_amount is required to confirm a quoted reservation")

        decision = RuleDecision(False, reason="approval required")
        if not admin_initiated and not approval_required:
            decision = await auto_confirmation_service.decide(
                db,
                ReservationCandidate(
                    asset=asset,
                    requested=requested,
                    customer_id=customer_id,
                    amount=final,
                    payment_method=payment_method.value,
                ),
                now,
            )

        status = initial_status(
            admin_initiated=admin_initiated,
            auto_confirm=data.auto_confirm if admin_initiated else decision.auto_confirm,
            approval_required=approval_required,
            payment_due_online=payment_due_online,
        )

        if status == ReservationStatus.PENDING_APPROVAL:
            collects_online = payment_method in ONLINE_PAYMENT_METHODS and (final is None or final > 0)
            payment_status = PaymentStatus.PENDING if collects_online else PaymentStatus.NOT_REQUIRED
        elif payment_due_online:
            payment_status = PaymentStatus.PENDING
        else:
            payment_status = PaymentStatus.NOT_REQUIRED
        assert_valid_payment_pair(status, payment_status)

        payment_deadline = None
        if status == ReservationStatus.AWAITING_CONFIRMATION:
            payment_deadline = now + timedelta(minutes=settings.checkout_payment_window_minutes)
        elif status == ReservationStatus.CONFIRMED and payment_due_online:
            payment_deadline = now + timedelta(days=settings.admin_payment_link_days)

        booking_date = requested.slot_date or requested.window.start.astimezone(get_zone(asset.timezone)).date()
        confirmation_code = await generate_confirmation_code(
            db,
            admin_initiated=admin_initiated,
            booking_date=booking_date,
            customer_name=customer_name,
            prefix=settings.confirmation_code_prefix,
        )

        reservation = Reservation(
            confirmation_code=confirmation_code,
            asset_type=asset.asset_type,
            asset_id=asset.id,
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=data.customer_email,
            customer_phone=data.customer_phone,
            start_at=requested.window.start,
            end_at=requested.window.end,
            slot_date=requested.slot_date,
            slot_time=requested.slot_time,
            quantity=data.quantity,
            status=status.value,
            payment_status=payment_status.value,
            payment_method=payment_method.value,
            estimated_price=estimated,
            final_price=final,
            paid_amount=0,
            currency=asset.currency or settings.currency,
            payment_deadline=payment_deadline,
            creation_method=creation_method.value,
            created_by=actor.id,
            details=data.details.model_dump(mode="json"),
            special_requests=data.special_requests,
            internal_notes=data.internal_notes,
            auto_confirmed=status == ReservationStatus.CONFIRMED and not admin_initiated,
            matched_rule_id=decision.matched_rule_id,
            created_at=now,
            updated_at=now,
            confirmed_at=now if status == ReservationStatus.CONFIRMED else None,
        )
        db.add(reservation)
        await db.flush()

        description = f"Reservation created as {status.value}"
        if decision.matched_rule_id:
            description = f"{description} by auto-confirmation rule"
        await history_service.record(
            db,
            reservation,
            change_type="created",
            description=description,
            actor=actor,
            to_status=status.value,
            data={
                "creation_method": creation_method.value,
                "matched_rule_id": str(decision.matched_rule_id) if decision.matched_rule_id else None,
                "rule_reason": decision.reason,
                "estimated_price": estimated,
                "final_price": final,
            },
        )

        await self._enqueue_creation_effects(db, reservation, asset, status, payment_due_online, decision)

        logger.info(
            f"Reservation {reservation.confirmation_code} created for asset {asset.id}: "
            f"{status.value}/{payment_status.value} by {actor.role.value} {actor.id}"
        )
        return reservation

    async def _enqueue_creation_effects(
        self,
        db: AsyncSession,
        reservation: Reservation,
        asset: Asset,
        status: ReservationStatus,
        payment_due_online: bool,
        decision: RuleDecision,
    ) -> None:
        if status in (ReservationStatus.AWAITING_CONFIRMATION, ReservationStatus.CONFIRMED) and payment_due_online:
            await outbox_service.request_payment_link(db, reservation)

        if status == ReservationStatus.CONFIRMED:
            rule = None
            if decision.matched_rule_id:
                rule = await db.get(AutoConfirmationRule, decision.matched_rule_id)
            await payment_handler.after_confirmation(
                db, reservation, notify_customer=rule.notify_customer if rule else True
            )
            if rule is not None and rule.notify_partner:
                await outbox_service.request_notification(
                    db,
                    reservation,
                    asset.partner_id,
                    notification_service.RESERVATION_CONFIRMED,
                    {"asset_name": asset.name},
                )
        elif status == ReservationStatus.PENDING_APPROVAL:
            await outbox_service.request_notification(
                db, reservation, reservation.customer_id, notification_service.RESERVATION_RECEIVED
            )
            await outbox_service.request_notification(
                db,
                reservation,
                asset.partner_id,
                notification_service.RESERVATION_REQUESTED,
                {"asset_name": asset.name},
                require_status=[ReservationStatus.PENDING_APPROVAL.value],
            )

    # ==================== STAFF DECISIONS ====================

    @require_admin
    async def approve_reservation(
        self,
        db: AsyncSession,
        actor: Actor,
        reservation_id: UUID,
        final_price: int | None = None,
        now: datetime | None = None,
    ) -> Reservation:
        """Approve a pending reservation.

        With a price, or when the known price has to be collected online,
        this opens the payment window; otherwise the reservation is
        confirmed straight away.
        """
        now = now or utcnow()
        reservation = await self._get_for_actor(db, actor, reservation_id, for_update=True)
        self._require_status(
            reservation, ReservationStatus.PENDING_APPROVAL, ReservationEvent.APPROVE, ReservationStatus.CONFIRMED
        )

        if final_price is None:
            final_price = reservation.final_price
            if final_price is None:
                raise ValidationError(
                    "A final price is required to approve a quoted reservation",
                    current_state=reservation.snapshot(),
                )
            if not requires_online_payment(reservation.payment_method, final_price):
                await apply_transition(
                    db,
                    reservation,
                    ReservationEvent.APPROVE,
                    ReservationStatus.CONFIRMED,
                    payment_status=PaymentStatus.NOT_REQUIRED,
                    actor=actor,
                    change_type="approved",
                    description=f"Approved by {actor.role.value}",
                    now=now,
                )
                await payment_handler.after_confirmation(db, reservation)
                return reservation

        return await payment_handler.on_price_confirmed(db, actor, reservation_id, final_price, now=now)

    @require_admin
    async def reject_reservation(
        self,
        db: AsyncSession,
        actor: Actor,
        reservation_id: UUID,
        reason: str,
        now: datetime | None = None,
    ) -> Reservation:
        """Reject a pending reservation."""
        reservation = await self._get_for_actor(db, actor, reservation_id, for_update=True)
        self._require_status(
            reservation, ReservationStatus.PENDING_APPROVAL, ReservationEvent.REJECT, ReservationStatus.REJECTED
        )

        reservation.rejection_reason = reason
        await apply_transition(
            db,
            reservation,
            ReservationEvent.REJECT,
            ReservationStatus.REJECTED,
            payment_status=payment_status_on_close(reservation.payment_status),
            actor=actor,
            change_type="rejected",
            description=f"Rejected: {reason}",
            data={"reason": reason},
            now=now,
        )
        await outbox_service.request_notification(
            db,
            reservation,
            reservation.customer_id,
            notification_service.RESERVATION_REJECTED,
            {"reason": reason},
        )
        return reservation

    @require_admin
    async def confirm_draft(
        self,
        db: AsyncSession,
        actor: Actor,
        reservation_id: UUID,
        now: datetime | None = None,
    ) -> Reservation:
        """Confirm a staff draft, sending a payment link when one is due."""
        now = now or utcnow()
        reservation = await self._get_for_actor(db, actor, reservation_id, for_update=True)
        self._require_status(reservation, ReservationStatus.DRAFT, ReservationEvent.APPROVE, ReservationStatus.CONFIRMED)
        if reservation.final_price is None:
            raise ValidationError(
                "Set a total amount before confirming this draft",
                current_state=reservation.snapshot(),
            )

        payment_due_online = requires_online_payment(reservation.payment_method, reservation.final_price)
        if payment_due_online:
            payment_status = PaymentStatus.PENDING
            reservation.payment_deadline = now + timedelta(days=settings.admin_payment_link_days)
        else:
            payment_status = PaymentStatus.NOT_REQUIRED

        await apply_transition(
            db,
            reservation,
            ReservationEvent.APPROVE,
            ReservationStatus.CONFIRMED,
            payment_status=payment_status,
            actor=actor,
            change_type="draft_confirmed",
            description=f"Draft confirmed by {actor.role.value}",
            now=now,
        )
        if payment_due_online:
            await outbox_service.request_payment_link(db, reservation)
        await payment_handler.after_confirmation(db, reservation)
        return reservation

    async def cancel_reservation(
        self,
        db: AsyncSession,
        actor: Actor,
        reservation_id: UUID,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> Reservation:
        """Cancel a live reservation; the customer or staff may do this."""
        reservation = await self._get_for_actor(db, actor, reservation_id, for_update=True)

        reservation.cancellation_reason = reason
        await apply_transition(
            db,
            reservation,
            ReservationEvent.CANCEL,
            ReservationStatus.CANCELED,
            payment_status=payment_status_on_close(reservation.payment_status),
            actor=actor,
            change_type="canceled",
            description=f"Canceled by {actor.role.value}" + (f": {reason}" if reason else ""),
            data={"reason": reason},
            now=now,
        )

        asset = await db.get(Asset, reservation.asset_id)
        await outbox_service.request_notification(
            db,
            reservation,
            reservation.customer_id,
            notification_service.RESERVATION_CANCELED,
            {"reason": reason},
        )
        if asset is not None and asset.partner_id != actor.id:
            await outbox_service.request_notification(
                db,
                reservation,
                asset.partner_id,
                notification_service.RESERVATION_CANCELED,
                {"reason": reason, "asset_name": asset.name},
            )
        return reservation

    @require_admin
    async def check_in(
        self,
        db: AsyncSession,
        actor: Actor,
        reservation_id: UUID,
        now: datetime | None = None,
    ) -> Reservation:
        """Redeem the voucher of a confirmed reservation and start it."""
        reservation = await self._get_for_actor(db, actor, reservation_id, for_update=True)
        await apply_transition(
            db,
            reservation,
            ReservationEvent.START,
            ReservationStatus.IN_PROGRESS,
            actor=actor,
            change_type="checked_in",
            description=f"Checked in by {actor.role.value}",
            now=now,
        )
        voucher = await voucher_service.get_for_reservation(db, reservation.id)
        if voucher is not None and voucher.status == VoucherStatus.ACTIVE.value:
            voucher.status = VoucherStatus.USED.value
        return reservation

    # ==================== EDITS ====================

    @require_admin
    async def update_reservation(
        self,
        db: AsyncSession,
        actor: Actor,
        reservation_id: UUID,
        data: ReservationUpdate,
        now: datetime | None = None,
    ) -> Reservation:
        """Edit a live reservation.

        Moving the window or changing the party size re-runs the conflict
        check against everyone else. A new price is accepted only while
        nothing has been paid, and a reservation awaiting payment gets a
        fresh window and link for it.
        """
        now = now or utcnow()
        reservation = await self._get_for_actor(db, actor, reservation_id, for_update=True)
        if is_terminal(reservation.status):
            raise InvalidTransitionError(
                reservation.status,
                reservation.status,
                detail=f"Reservation is {reservation.status} and can no longer change",
                current_state=reservation.snapshot(),
            )

        changes = data.model_dump(exclude_unset=True)
        changed: dict[str, object] = {}
        new_final = None

        timing_fields = ("start_at", "end_at", "slot_date", "slot_time", "quantity")
        if any(changes.get(field) is not None for field in timing_fields):
            asset = await conflict_service.lock_asset(db, reservation.asset_id)
            quantity = data.quantity or reservation.quantity
            self._check_quantity(asset, quantity)
            requested = self._requested_window(
                asset,
                data.start_at or reservation.start_at,
                data.end_at or reservation.end_at,
                data.slot_date or reservation.slot_date,
                data.slot_time or reservation.slot_time,
                quantity,
            )
            if await conflict_service.has_conflict(db, asset, requested, exclude_reservation_id=reservation.id):
                raise ConflictError(
                    "The new time is not available for this asset",
                    current_state=reservation.snapshot(),
                )

            reservation.start_at = requested.window.start
            reservation.end_at = requested.window.end
            reservation.slot_date = requested.slot_date
            reservation.slot_time = requested.slot_time
            reservation.quantity = quantity
            changed["window"] = {
                "start_at": requested.window.start.isoformat(),
                "end_at": requested.window.end.isoformat(),
                "quantity": quantity,
            }

            estimated, final = quote_price(asset.asset_type, asset.pricing_mode, asset.unit_price, requested)
            reservation.estimated_price = estimated
            if final is not None and reservation.creation_method == CreationMethod.TRAVELER.value:
                new_final = final

        if data.total_amount is not None:
            new_final = data.total_amount

        price_changed = new_final is not None and new_final != reservation.final_price
        method_changed = data.payment_method is not None and data.payment_method.value != reservation.payment_method
        if (price_changed or method_changed) and reservation.payment_status in _UNPAYABLE_EDIT:
            raise ValidationError(
                "Price and payment method cannot change once a payment was made",
                current_state=reservation.snapshot(),
            )
        if price_changed:
            changed["final_price"] = {"from": reservation.final_price, "to": new_final}
            reservation.final_price = new_final
        if method_changed:
            changed["payment_method"] = {"from": reservation.payment_method, "to": data.payment_method.value}
            reservation.payment_method = data.payment_method.value

        for field in ("special_requests", "internal_notes", "customer_name", "customer_email", "customer_phone"):
            if field in changes and changes[field] != getattr(reservation, field):
                changed[field] = changes[field]
                setattr(reservation, field, changes[field])

        if not changed:
            return reservation

        if price_changed or method_changed:
            await self._reprice_payment(db, reservation, now)

        reservation.updated_at = now
        await history_service.record(
            db,
            reservation,
            change_type="updated",
            description=f"Updated {', '.join(sorted(changed))}",
            actor=actor,
            from_status=reservation.status,
            to_status=reservation.status,
            data=changed,
        )
        await flush_reservation(db, reservation)
        logger.info(f"Reservation {reservation.id} updated by {actor.id}: {sorted(changed)}")
        return reservation

    async def _reprice_payment(self, db: AsyncSession, reservation: Reservation, now: datetime) -> None:
        """Realign payment status, deadline and link after a price or method change."""
        status = ReservationStatus(reservation.status)
        due = requires_online_payment(reservation.payment_method, reservation.final_price)
        request_link = False

        if status in (ReservationStatus.AWAITING_CONFIRMATION, ReservationStatus.AWAITING_PAYMENT):
            if not due:
                raise ValidationError(
                    "A reservation awaiting payment needs an online payment; approve or cancel it instead",
                    current_state=reservation.snapshot(),
                )
            if status == ReservationStatus.AWAITING_CONFIRMATION:
                window = timedelta(minutes=settings.checkout_payment_window_minutes)
            else:
                window = timedelta(hours=settings.price_confirmation_payment_window_hours)
            reservation.payment_deadline = now + window
            request_link = True
        elif status in (ReservationStatus.CONFIRMED, ReservationStatus.IN_PROGRESS):
            reservation.payment_deadline = now + timedelta(days=settings.admin_payment_link_days) if due else None
            request_link = due

        payment_status = PaymentStatus.PENDING if due else PaymentStatus.NOT_REQUIRED
        if status == ReservationStatus.PENDING_APPROVAL and reservation.final_price is None:
            payment_status = PaymentStatus(reservation.payment_status)
        try:
            assert_payment_transition(reservation.payment_status, payment_status)
            assert_valid_payment_pair(status, payment_status)
        except InvalidTransitionError as e:
            e.current_state = reservation.snapshot()
            raise
        reservation.payment_status = payment_status.value

        if request_link:
            await outbox_service.request_payment_link(db, reservation)

    # ==================== QUERIES ====================

    async def get_reservation(self, db: AsyncSession, actor: Actor, reservation_id: UUID) -> Reservation:
        return await self._get_for_actor(db, actor, reservation_id)

    async def list_reservations(
        self,
        db: AsyncSession,
        actor: Actor,
        status: ReservationStatus | None = None,
        asset_id: UUID | None = None,
        customer_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Reservation], int]:
        """List reservations visible to the actor, soonest first."""
        query = select(Reservation)
        if not actor.is_admin:
            query = query.where(Reservation.customer_id == actor.id)
        elif actor.role == Role.PARTNER:
            query = query.join(Asset, Asset.id == Reservation.asset_id).where(Asset.partner_id == actor.id)

        if status is not None:
            query = query.where(Reservation.status == ReservationStatus(status).value)
        if asset_id is not None:
            query = query.where(Reservation.asset_id == asset_id)
        if customer_id is not None and actor.is_admin:
            query = query.where(Reservation.customer_id == customer_id)

        total = await db.execute(select(func.count()).select_from(query.subquery()))
        result = await db.execute(
            query.order_by(Reservation.start_at, Reservation.id).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total.scalar_one()

    async def get_history(
        self,
        db: AsyncSession,
        actor: Actor,
        reservation_id: UUID,
    ) -> list[ChangeHistoryEntry]:
        await self._get_for_actor(db, actor, reservation_id)
        return await history_service.list_for_reservation(db, reservation_id)


reservation_service = ReservationService()
