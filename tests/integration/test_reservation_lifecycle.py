"""
Integration tests for creating, approving, editing and cancelling reservations.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from reservations.core.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    ValidationError,
)
from reservations.core.permissions import Actor, Role
from reservations.domain.payment_state import PaymentStatus
from reservations.domain.reservation_state import ReservationStatus
from reservations.models.voucher import VoucherStatus
from reservations.schemas.reservation import ReservationUpdate
from reservations.services.history_service import history_service
from reservations.services.outbox_service import OutboxKind, outbox_service
from reservations.services.payment_handler import payment_handler
from reservations.services.reservation_service import reservation_service
from reservations.services.voucher_service import voucher_service
from tests.factories import committed, outbox_messages, range_request, reload


@pytest.mark.integration
@pytest.mark.asyncio
async def test_traveler_booking_without_rules_waits_for_approval(
    session_factory, make_asset, traveler: Actor, now
) -> None:
    """Test that a traveler booking with no matching rule is pending approval."""
    asset = await make_asset()
    start = now + timedelta(days=10)

    reservation = await committed(
        session_factory, reservation_service.create_reservation, traveler, range_request(asset, start)
    )

    assert reservation.status == ReservationStatus.PENDING_APPROVAL.value
    assert reservation.payment_status == PaymentStatus.PENDING.value
    assert reservation.customer_id == traveler.id
    assert reservation.customer_name == "Maria Silva"
    assert reservation.estimated_price == 20000
    assert reservation.final_price == 20000
    assert reservation.payment_deadline is None
    assert reservation.confirmation_code.startswith("RSV-")

    notifications = await outbox_messages(session_factory, reservation.id, OutboxKind.NOTIFICATION)
    assert {m.payload["type"] for m in notifications} == {
        "reservation_received",
        "reservation_requested",
    }


@pytest.mark.integration
@pytest.mark.asyncio
async def test_traveler_cannot_use_staff_fields(
    session_factory, make_asset, traveler: Actor, now
) -> None:
    """Test that travelers cannot set prices or confirm directly."""
    asset = await make_asset()
    start = now + timedelta(days=5)

    with pytest.raises(AuthorizationError):
        await committed(
            session_factory,
            reservation_service.create_reservation,
            traveler,
            range_request(asset, start, total_amount=100),
        )
    with pytest.raises(AuthorizationError):
        await committed(
            session_factory,
            reservation_service.create_reservation,
            traveler,
            range_request(asset, start, auto_confirm=True),
        )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_traveler_cannot_book_the_past(
    session_factory, make_asset, traveler: Actor, now
) -> None:
    """Test that traveler reservations must start in the future."""
    asset = await make_asset()

    with pytest.raises(ValidationError):
        await committed(
            session_factory,
            reservation_service.create_reservation,
            traveler,
            range_request(asset, now - timedelta(hours=1)),
        )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_inactive_asset_rejects_bookings(
    session_factory, make_asset, traveler: Actor, now
) -> None:
    """Test that inactive assets do not accept reservations."""
    asset = await make_asset(is_active=False)

    with pytest.raises(ValidationError):
        await committed(
            session_factory,
            reservation_service.create_reservation,
            traveler,
            range_request(asset, now + timedelta(days=3)),
        )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_approval_opens_payment_window(
    session_factory, make_asset, traveler: Actor, employee: Actor, now
) -> None:
    """Test that approving a card reservation asks for payment within 24 hours."""
    asset = await make_asset(unit_price=25000)
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=10)),
        now=now,
    )

    approved = await committed(
        session_factory, reservation_service.approve_reservation, employee, reservation.id, now=now
    )

    assert approved.status == ReservationStatus.AWAITING_PAYMENT.value
    assert approved.payment_status == PaymentStatus.PENDING.value
    assert approved.final_price == 50000
    assert approved.payment_deadline == now + timedelta(hours=24)

    links = await outbox_messages(session_factory, reservation.id, OutboxKind.PAYMENT_LINK_REQUESTED)
    assert len(links) == 1
    assert links[0].payload["amount"] == 50000


@pytest.mark.integration
@pytest.mark.asyncio
async def test_cash_approval_confirms_immediately(
    session_factory, make_asset, traveler: Actor, partner: Actor, now
) -> None:
    """Test that a reservation paid on site is confirmed on approval."""
    asset = await make_asset()
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=4), payment_method="cash"),
    )
    assert reservation.payment_status == PaymentStatus.NOT_REQUIRED.value

    approved = await committed(
        session_factory, reservation_service.approve_reservation, partner, reservation.id
    )

    assert approved.status == ReservationStatus.CONFIRMED.value
    assert approved.confirmed_at is not None
    vouchers = await outbox_messages(session_factory, reservation.id, OutboxKind.VOUCHER_REQUESTED)
    assert len(vouchers) == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_quoted_reservation_needs_a_price(
    session_factory, make_asset, traveler: Actor, employee: Actor, now
) -> None:
    """Test the quote flow: no final price until staff confirms one."""
    asset = await make_asset("accommodation", pricing_mode="quote")
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=20), days=3),
    )
    assert reservation.status == ReservationStatus.PENDING_APPROVAL.value
    assert reservation.final_price is None
    assert reservation.estimated_price == 30000

    with pytest.raises(ValidationError):
        await committed(session_factory, reservation_service.approve_reservation, employee, reservation.id)

    priced = await committed(
        session_factory, payment_handler.on_price_confirmed, employee, reservation.id, 45000
    )
    assert priced.status == ReservationStatus.AWAITING_PAYMENT.value
    assert priced.final_price == 45000

    entries = await committed(session_factory, history_service.list_for_reservation, reservation.id)
    assert [e.change_type for e in entries] == ["created", "price_confirmed"]
    assert entries[-1].data["estimated_price"] == 30000
    assert entries[-1].actor_id == employee.id


@pytest.mark.integration
@pytest.mark.asyncio
async def test_price_confirmation_rejects_non_positive_price(
    session_factory, make_asset, traveler: Actor, employee: Actor, now
) -> None:
    """Test that a zero price cannot be confirmed."""
    asset = await make_asset(pricing_mode="quote")
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=2)),
    )

    with pytest.raises(ValidationError):
        await committed(session_factory, payment_handler.on_price_confirmed, employee, reservation.id, 0)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_travelers_cannot_approve(
    session_factory, make_asset, traveler: Actor, now
) -> None:
    """Test that approval is staff only."""
    asset = await make_asset()
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=2)),
    )

    with pytest.raises(AuthorizationError):
        await committed(session_factory, reservation_service.approve_reservation, traveler, reservation.id)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_reject_closes_pending_payment(
    session_factory, make_asset, traveler: Actor, employee: Actor, now
) -> None:
    """Test that rejection cancels the pending payment and keeps the reason."""
    asset = await make_asset()
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=2)),
    )

    rejected = await committed(
        session_factory, reservation_service.reject_reservation, employee, reservation.id, "Fully booked"
    )

    assert rejected.status == ReservationStatus.REJECTED.value
    assert rejected.payment_status == PaymentStatus.CANCELED.value
    assert rejected.rejection_reason == "Fully booked"
    assert rejected.rejected_at is not None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_staff_draft_then_confirm(
    session_factory, make_asset, traveler: Actor, employee: Actor, now
) -> None:
    """Test that staff drafts are confirmed with a payment link when paid by card."""
    asset = await make_asset()
    draft = await committed(
        session_factory,
        reservation_service.create_reservation,
        employee,
        range_request(
            asset,
            now + timedelta(days=7),
            customer_id=traveler.id,
            customer_name="Pedro Alvares",
            creation_method="admin_phone",
            total_amount=18000,
        ),
    )
    assert draft.status == ReservationStatus.DRAFT.value
    assert draft.final_price == 18000
    assert draft.creation_method == "admin_phone"
    assert draft.created_by == employee.id
    assert draft.customer_id == traveler.id

    confirmed = await committed(
        session_factory, reservation_service.confirm_draft, employee, draft.id, now=now
    )

    assert confirmed.status == ReservationStatus.CONFIRMED.value
    assert confirmed.payment_status == PaymentStatus.PENDING.value
    assert confirmed.payment_deadline == now + timedelta(days=3)
    links = await outbox_messages(session_factory, draft.id, OutboxKind.PAYMENT_LINK_REQUESTED)
    assert links[0].payload["amount"] == 18000


@pytest.mark.integration
@pytest.mark.asyncio
async def test_staff_booking_requires_customer(
    session_factory, make_asset, employee: Actor, now
) -> None:
    """Test that staff must name the customer they book for."""
    asset = await make_asset()

    with pytest.raises(ValidationError):
        await committed(
            session_factory,
            reservation_service.create_reservation,
            employee,
            range_request(asset, now + timedelta(days=1)),
        )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_partner_cannot_book_other_partners_assets(
    session_factory, make_asset, traveler: Actor, now
) -> None:
    """Test that partners only book their own assets."""


    asset = await make_asset()
    other_partner = Actor(id=uuid.uuid4(), role=Role.PARTNER, name="Outro Parceiro")

    with pytest.raises(AuthorizationError):
        await committed(
            session_factory,
            reservation_service.create_reservation,
            other_partner,
            range_request(asset, now + timedelta(days=1), customer_id=traveler.id),
        )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_cancel_by_owner_and_terminal_guard(
    session_factory, make_asset, traveler: Actor, now
) -> None:
    """Test that a customer can cancel once and the result is final."""


    asset = await make_asset()
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=2)),
    )
    stranger = Actor(id=uuid.uuid4(), role=Role.TRAVELER)

    with pytest.raises(AuthorizationError):
        await committed(session_factory, reservation_service.cancel_reservation, stranger, reservation.id)

    canceled = await committed(
        session_factory, reservation_service.cancel_reservation, traveler, reservation.id, "Change of plans"
    )
    assert canceled.status == ReservationStatus.CANCELED.value
    assert canceled.payment_status == PaymentStatus.CANCELED.value
    assert canceled.cancellation_reason == "Change of plans"

    with pytest.raises(InvalidTransitionError) as exc_info:
        await committed(session_factory, reservation_service.cancel_reservation, traveler, reservation.id)
    assert exc_info.value.current_state["status"] == ReservationStatus.CANCELED.value

    stored = await reload(session_factory, reservation.id)
    assert stored.status == ReservationStatus.CANCELED.value
    assert stored.version == canceled.version


@pytest.mark.integration
@pytest.mark.asyncio
async def test_check_in_redeems_voucher(
    session_factory, make_asset, traveler: Actor, employee: Actor, now
) -> None:
    """Test that check-in starts the reservation and marks the voucher used."""
    asset = await make_asset()
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        employee,
        range_request(
            asset,
            now + timedelta(hours=1),
            customer_id=traveler.id,
            payment_method="cash",
            auto_confirm=True,
        ),
    )
    assert reservation.status == ReservationStatus.CONFIRMED.value
    await outbox_service.drain(session_factory)

    started = await committed(session_factory, reservation_service.check_in, employee, reservation.id)

    assert started.status == ReservationStatus.IN_PROGRESS.value
    assert started.started_at is not None
    voucher = await committed(session_factory, voucher_service.get_for_reservation, reservation.id)
    assert voucher.status == VoucherStatus.USED.value


@pytest.mark.integration
@pytest.mark.asyncio
async def test_cancel_voids_issued_voucher(
    session_factory, make_asset, traveler: Actor, employee: Actor, now
) -> None:
    """Test that canceling a confirmed reservation makes its voucher unredeemable."""
    asset = await make_asset()
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        employee,
        range_request(
            asset,
            now + timedelta(days=3),
            customer_id=traveler.id,
            payment_method="cash",
            auto_confirm=True,
        ),
    )
    await outbox_service.drain(session_factory)
    issued = await committed(session_factory, voucher_service.get_for_reservation, reservation.id)
    assert issued.status == VoucherStatus.ACTIVE.value

    await committed(session_factory, reservation_service.cancel_reservation, traveler, reservation.id)

    voucher = await committed(session_factory, voucher_service.get_for_reservation, reservation.id)
    assert voucher.status == VoucherStatus.CANCELED.value
    assert voucher.id == issued.id


@pytest.mark.integration
@pytest.mark.asyncio
async def test_update_reprices_awaiting_payment(
    session_factory, make_asset, traveler: Actor, employee: Actor, now
) -> None:
    """Test that a new price gets a fresh payment window and link."""
    asset = await make_asset()
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=10)),
    )
    await committed(session_factory, reservation_service.approve_reservation, employee, reservation.id, now=now)

    later = now + timedelta(hours=5)
    updated = await committed(
        session_factory,
        reservation_service.update_reservation,
        employee,
        reservation.id,
        ReservationUpdate(total_amount=15000, internal_notes="Discount agreed by phone"),
        now=later,
    )

    assert updated.final_price == 15000
    assert updated.payment_deadline == later + timedelta(hours=24)
    assert updated.internal_notes == "Discount agreed by phone"
    links = await outbox_messages(session_factory, reservation.id, OutboxKind.PAYMENT_LINK_REQUESTED)
    assert [m.payload["amount"] for m in links] == [20000, 15000]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_price_is_frozen_once_paid(
    session_factory, make_asset, traveler: Actor, employee: Actor, now
) -> None:
    """Test that a paid reservation cannot be repriced."""
    asset = await make_asset()
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        employee,
        range_request(
            asset,
            now + timedelta(days=3),
            customer_id=traveler.id,
            total_amount=20000,
            auto_confirm=True,
        ),
    )
    await committed(
        session_factory,
        payment_handler.on_payment_event,
        reservation.id,
        "paid",
        "pi_paid_1",
        amount=20000,
    )

    with pytest.raises(ValidationError):
        await committed(
            session_factory,
            reservation_service.update_reservation,
            employee,
            reservation.id,
            ReservationUpdate(total_amount=10000),
        )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_list_is_scoped_to_the_actor(
    session_factory, make_asset, traveler: Actor, partner: Actor, now
) -> None:
    """Test that travelers see their own reservations and partners their assets'."""


    own_asset = await make_asset()
    other_asset = await make_asset(partner_id=uuid.uuid4())
    other_traveler = Actor(id=uuid.uuid4(), role=Role.TRAVELER, name="Joao Souza")

    await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(own_asset, now + timedelta(days=2)),
    )
    await committed(
        session_factory,
        reservation_service.create_reservation,
        other_traveler,
        range_request(other_asset, now + timedelta(days=2)),
    )

    mine, mine_total = await committed(session_factory, reservation_service.list_reservations, traveler)
    assert mine_total == 1
    assert mine[0].customer_id == traveler.id

    partner_view, partner_total = await committed(
        session_factory, reservation_service.list_reservations, partner
    )
    assert partner_total == 1
    assert partner_view[0].asset_id == own_asset.id

    confirmed, _ = await committed(
        session_factory,
        reservation_service.list_reservations,
        traveler,
        status=ReservationStatus.CONFIRMED,
    )
    assert confirmed == []
