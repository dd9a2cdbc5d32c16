"""
Integration tests for auto-confirmation rule management and evaluation at booking time.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from reservations.core.exceptions import AuthorizationError, NotFoundError
from reservations.core.permissions import Actor, Role
from reservations.domain.auto_confirmation import (
    AmountThresholds,
    AvailabilityConditions,
    RuleConditions,
)
from reservations.domain.payment_state import PaymentStatus
from reservations.domain.reservation_state import ReservationStatus
from reservations.models.auto_confirmation import AutoConfirmationRule
from reservations.schemas.auto_confirmation import RuleCreate, RuleUpdate
from reservations.services.auto_confirmation_service import auto_confirmation_service
from reservations.services.outbox_service import OutboxKind
from reservations.services.reservation_service import reservation_service
from tests.factories import committed, outbox_messages, range_request, slot_request


async def create_rule(session_factory, actor: Actor, asset, **fields) -> AutoConfirmationRule:
    data = RuleCreate(asset_id=asset.id, name=fields.pop("name", "Always confirm"), **fields)
    return await committed(session_factory, auto_confirmation_service.create_rule, actor, data)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_matching_rule_confirms_cash_booking(
    session_factory, make_asset, partner: Actor, traveler: Actor, now
) -> None:
    """Test that a matching rule confirms a booking paid on site."""
    asset = await make_asset()
    rule = await create_rule(session_factory, partner, asset)

    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=3), payment_method="cash"),
    )

    assert reservation.status == ReservationStatus.CONFIRMED.value
    assert reservation.payment_status == PaymentStatus.NOT_REQUIRED.value
    assert reservation.auto_confirmed is True
    assert reservation.matched_rule_id == rule.id
    assert len(await outbox_messages(session_factory, reservation.id, OutboxKind.VOUCHER_REQUESTED)) == 1

    [stored_rule] = await committed(session_factory, auto_confirmation_service.list_rules, partner, asset.id)
    assert stored_rule.times_applied == 1
    assert stored_rule.last_applied_at is not None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_matching_rule_with_card_goes_to_checkout(
    session_factory, make_asset, partner: Actor, traveler: Actor, now
) -> None:
    """Test that an auto-confirmed card booking waits 30 minutes for payment."""
    asset = await make_asset()
    await create_rule(session_factory, partner, asset)

    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=3)),
        now=now,
    )

    assert reservation.status == ReservationStatus.AWAITING_CONFIRMATION.value
    assert reservation.payment_status == PaymentStatus.PENDING.value
    assert reservation.payment_deadline == now + timedelta(minutes=30)
    links = await outbox_messages(session_factory, reservation.id, OutboxKind.PAYMENT_LINK_REQUESTED)
    assert links[0].payload["amount"] == 20000


@pytest.mark.integration
@pytest.mark.asyncio
async def test_rule_outside_amount_bounds_needs_approval(
    session_factory, make_asset, partner: Actor, traveler: Actor, now
) -> None:
    """Test that a booking above the rule's maximum falls back to manual approval."""
    asset = await make_asset()
    await create_rule(
        session_factory,
        partner,
        asset,
        name="Small bookings",
        conditions=RuleConditions(amount=AmountThresholds(enabled=True, max_amount=5000)),
    )

    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=3)),
    )

    assert reservation.status == ReservationStatus.PENDING_APPROVAL.value
    assert reservation.matched_rule_id is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_buffer_to_neighbor_is_enforced(
    session_factory, make_asset, partner: Actor, traveler: Actor, now
) -> None:
    """Test that the availability buffer looks at neighboring reservations."""
    asset = await make_asset()
    await create_rule(
        session_factory,
        partner,
        asset,
        name="Needs turnaround",
        conditions=RuleConditions(availability=AvailabilityConditions(enabled=True, buffer_minutes=120)),
    )
    start = now + timedelta(days=5)
    first = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, start, payment_method="cash"),
    )
    assert first.status == ReservationStatus.CONFIRMED.value

    tight = await committed(
        session_factory,
        reservation_service.create_reservation,
        Actor(id=uuid.uuid4(), role=Role.TRAVELER, name="Carla Dias"),
        range_request(asset, start + timedelta(days=2, minutes=30), payment_method="cash"),
    )
    assert tight.status == ReservationStatus.PENDING_APPROVAL.value


@pytest.mark.integration
@pytest.mark.asyncio
async def test_package_always_needs_approval(
    session_factory, make_asset, partner: Actor, traveler: Actor, now
) -> None:
    """Test that packages are never auto-confirmed, whatever the rules say."""
    asset = await make_asset("package")
    await create_rule(session_factory, partner, asset)

    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        slot_request(asset, (now + timedelta(days=3)).date(), slot_time="09:00"),
    )

    assert reservation.status == ReservationStatus.PENDING_APPROVAL.value


@pytest.mark.integration
@pytest.mark.asyncio
async def test_archived_rule_is_not_evaluated(
    session_factory, make_asset, partner: Actor, traveler: Actor, now
) -> None:
    """Test that archiving a rule stops it from confirming bookings."""
    asset = await make_asset()
    rule = await create_rule(session_factory, partner, asset)

    archived = await committed(session_factory, auto_confirmation_service.archive_rule, partner, rule.id)
    assert archived.lifecycle == "archived"
    assert archived.enabled is False

    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=3), payment_method="cash"),
    )
    assert reservation.status == ReservationStatus.PENDING_APPROVAL.value

    with pytest.raises(NotFoundError):
        await committed(session_factory, auto_confirmation_service.archive_rule, partner, rule.id)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_update_rule(session_factory, make_asset, employee: Actor) -> None:
    """Test that staff can edit a rule's priority and conditions."""
    asset = await make_asset()
    rule = await create_rule(session_factory, employee, asset)

    updated = await committed(
        session_factory,
        auto_confirmation_service.update_rule,
        employee,
        rule.id,
        RuleUpdate(
            priority=5,
            conditions=RuleConditions(amount=AmountThresholds(enabled=True, min_amount=1000)),
        ),
    )

    assert updated.priority == 5
    assert updated.conditions["amount"]["enabled"] is True
    assert updated.conditions["amount"]["min_amount"] == 1000
    assert updated.name == "Always confirm"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_rules_are_scoped_to_the_asset_partner(
    session_factory, make_asset, partner: Actor, traveler: Actor
) -> None:
    """Test that partners cannot manage other partners' rules and travelers none."""
    asset = await make_asset()
    rule = await create_rule(session_factory, partner, asset)
    intruder = Actor(id=uuid.uuid4(), role=Role.PARTNER, name="Outra Pousada")

    with pytest.raises(AuthorizationError):
        await create_rule(session_factory, intruder, asset)
    with pytest.raises(AuthorizationError):
        await committed(session_factory, auto_confirmation_service.archive_rule, intruder, rule.id)
    with pytest.raises(AuthorizationError):
        await committed(session_factory, auto_confirmation_service.list_rules, traveler, asset.id)
