"""
Integration tests for outbox dispatch, retries and skipped side effects.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from reservations.core.permissions import Actor
from reservations.database import utcnow
from reservations.domain.reservation_state import ReservationStatus
from reservations.gateways.base import GatewayType, PaymentLinkResult
from reservations.gateways.manual import ManualGateway
from reservations.models.reservation import Reservation
from reservations.services.gateway_service import gateway_service
from reservations.services.outbox_service import OutboxKind, OutboxStatus, outbox_service
from reservations.services.reservation_service import reservation_service
from tests.factories import committed, outbox_messages, range_request, reload


class UnavailableGateway(ManualGateway):
    """Manual gateway whose link endpoint is down."""

    def __init__(self) -> None:
        self.calls = 0

    async def create_payment_link(
        self,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        expires_at: datetime | None = None,
        metadata: dict | None = None,
    ) -> PaymentLinkResult:
        self.calls += 1
        return PaymentLinkResult(success=False, error_message="503 Service Unavailable")


@pytest.fixture
def unavailable_gateway(monkeypatch: pytest.MonkeyPatch) -> UnavailableGateway:
    gateway = UnavailableGateway()
    monkeypatch.setitem(gateway_service._gateways, GatewayType.MANUAL, gateway)
    return gateway


@pytest.fixture
async def approved(session_factory, make_asset, traveler: Actor, employee: Actor, now):
    asset = await make_asset()
    reservation = await committed(
        session_factory,
        reservation_service.create_reservation,
        traveler,
        range_request(asset, now + timedelta(days=10)),
    )
    return await committed(session_factory, reservation_service.approve_reservation, employee, reservation.id)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_failed_dispatch_is_retried_with_backoff(
    session_factory,
    approved,
    unavailable_gateway: UnavailableGateway,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test that gateway failures back off and never touch the reservation."""
    monkeypatch.setattr("reservations.services.outbox_service.settings.outbox_backoff_seconds", 30)
    monkeypatch.setattr("reservations.services.outbox_service.settings.outbox_max_attempts", 3)
    clock = utcnow() + timedelta(seconds=1)

    first = await outbox_service.drain(session_factory, now=clock)
    assert first.retried == 1

    [message] = await outbox_messages(session_factory, approved.id, OutboxKind.PAYMENT_LINK_REQUESTED)
    assert message.status == OutboxStatus.PENDING
    assert message.attempts == 1
    assert message.available_at == clock + timedelta(seconds=30)
    assert "503" in message.last_error

    # Not due yet
    await outbox_service.drain(session_factory, now=clock + timedelta(seconds=10))
    assert unavailable_gateway.calls == 1

    second = await outbox_service.drain(session_factory, now=clock + timedelta(seconds=30))
    assert second.retried == 1
    [message] = await outbox_messages(session_factory, approved.id, OutboxKind.PAYMENT_LINK_REQUESTED)
    assert message.available_at == clock + timedelta(seconds=90)

    third = await outbox_service.drain(session_factory, now=clock + timedelta(seconds=90))
    assert third.failed == 1
    [message] = await outbox_messages(session_factory, approved.id, OutboxKind.PAYMENT_LINK_REQUESTED)
    assert message.status == OutboxStatus.FAILED
    assert message.attempts == 3
    assert unavailable_gateway.calls == 3

    stored = await reload(session_factory, approved.id)
    assert stored.status == ReservationStatus.AWAITING_PAYMENT.value
    assert stored.payment_link_url is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_link_for_closed_reservation_is_skipped(
    session_factory, approved, traveler: Actor
) -> None:
    """Test that a pending link request is dropped once the reservation is canceled."""
    await committed(session_factory, reservation_service.cancel_reservation, traveler, approved.id)

    report = await outbox_service.drain(session_factory)

    assert report.skipped >= 1
    [message] = await outbox_messages(session_factory, approved.id, OutboxKind.PAYMENT_LINK_REQUESTED)
    assert message.status == OutboxStatus.SKIPPED
    assert (await reload(session_factory, approved.id)).payment_link_url is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_status_bound_notification_is_skipped(session_factory, approved) -> None:
    """Test that the partner's approval request is not sent after approval."""
    await outbox_service.drain(session_factory)

    messages = await outbox_messages(session_factory, approved.id, OutboxKind.NOTIFICATION)
    by_type = {m.payload["type"]: m.status for m in messages if m.payload["type"] != "payment_link_ready"}
    assert by_type["reservation_requested"] == OutboxStatus.SKIPPED
    assert by_type["reservation_received"] == OutboxStatus.DISPATCHED


@pytest.mark.integration
@pytest.mark.asyncio
async def test_enqueue_deduplicates(session_factory, approved) -> None:
    """Test that identical side effects are enqueued once."""
    async with session_factory() as db:
        reservation = await db.get(Reservation, approved.id)
        first = await outbox_service.request_voucher(db, reservation)
        await db.flush()
        second = await outbox_service.request_voucher(db, reservation)
        await db.commit()

    assert first is not None
    assert second is None
