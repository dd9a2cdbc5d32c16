"""Reservation endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from reservations.api.deps import AdminActor, CurrentActor, DbSession
from reservations.domain.reservation_state import ReservationStatus
from reservations.schemas.payment import PaymentEventResponse, PaymentRecordRequest
from reservations.schemas.reservation import (
    ApproveRequest,
    CancelRequest,
    ChangeHistoryResponse,
    PriceConfirmRequest,
    RejectRequest,
    ReservationCreate,
    ReservationListResponse,
    ReservationResponse,
    ReservationUpdate,
)
from reservations.services.payment_handler import payment_handler
from reservations.services.reservation_service import reservation_service

router = APIRouter()


@router.post("/", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    data: ReservationCreate,
    actor: CurrentActor,
    db: DbSession,
) -> ReservationResponse:
    """Create a reservation for the caller, or for a customer when staff."""
    reservation = await reservation_service.create_reservation(db, actor, data)
    return ReservationResponse.model_validate(reservation)


@router.get("/", response_model=ReservationListResponse)
async def list_reservations(
    actor: CurrentActor,
    db: DbSession,
    status_filter: ReservationStatus | None = Query(None, alias="status"),
    asset_id: UUID | None = None,
    customer_id: UUID | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> ReservationListResponse:
    """List reservations visible to the caller."""
    items, total = await reservation_service.list_reservations(
        db,
        actor,
        status=status_filter,
        asset_id=asset_id,
        customer_id=customer_id,
        limit=limit,
        offset=offset,
    )
    return ReservationListResponse(
        items=[ReservationResponse.model_validate(r) for r in items],
        total=total,
    )


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: UUID,
    actor: CurrentActor,
    db: DbSession,
) -> ReservationResponse:
    reservation = await reservation_service.get_reservation(db, actor, reservation_id)
    return ReservationResponse.model_validate(reservation)


@router.get("/{reservation_id}/history", response_model=list[ChangeHistoryResponse])
async def get_reservation_history(
    reservation_id: UUID,
    actor: CurrentActor,
    db: DbSession,
) -> list[ChangeHistoryResponse]:
    """Change history, oldest first."""
    entries = await reservation_service.get_history(db, actor, reservation_id)
    return [ChangeHistoryResponse.model_validate(e) for e in entries]


@router.patch("/{reservation_id}", response_model=ReservationResponse)
async def update_reservation(
    reservation_id: UUID,
    data: ReservationUpdate,
    actor: AdminActor,
    db: DbSession,
) -> ReservationResponse:
    """Edit a live reservation (staff only)."""
    reservation = await reservation_service.update_reservation(db, actor, reservation_id, data)
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/approve", response_model=ReservationResponse)
async def approve_reservation(
    reservation_id: UUID,
    actor: AdminActor,
    db: DbSession,
    request: ApproveRequest | None = None,
) -> ReservationResponse:
    """Approve a pending reservation, optionally fixing its price."""
    final_price = request.final_price if request else None
    reservation = await reservation_service.approve_reservation(
        db, actor, reservation_id, final_price=final_price
    )
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/confirm-price", response_model=ReservationResponse)
async def confirm_price(
    reservation_id: UUID,
    request: PriceConfirmRequest,
    actor: AdminActor,
    db: DbSession,
) -> ReservationResponse:
    """Set the binding price of a quoted reservation and request payment."""
    await reservation_service.get_reservation(db, actor, reservation_id)
    reservation = await payment_handler.on_price_confirmed(
        db, actor, reservation_id, request.final_price
    )
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/reject", response_model=ReservationResponse)
async def reject_reservation(
    reservation_id: UUID,
    request: RejectRequest,
    actor: AdminActor,
    db: DbSession,
) -> ReservationResponse:
    reservation = await reservation_service.reject_reservation(
        db, actor, reservation_id, request.reason
    )
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/confirm", response_model=ReservationResponse)
async def confirm_draft(
    reservation_id: UUID,
    actor: AdminActor,
    db: DbSession,
) -> ReservationResponse:
    """Confirm a staff draft."""
    reservation = await reservation_service.confirm_draft(db, actor, reservation_id)
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: UUID,
    actor: CurrentActor,
    db: DbSession,
    request: CancelRequest | None = None,
) -> ReservationResponse:
    """Cancel a reservation (customer or staff)."""
    reservation = await reservation_service.cancel_reservation(
        db, actor, reservation_id, reason=request.reason if request else None
    )
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/check-in", response_model=ReservationResponse)
async def check_in(
    reservation_id: UUID,
    actor: AdminActor,
    db: DbSession,
) -> ReservationResponse:
    """Redeem the voucher and start the reservation."""
    reservation = await reservation_service.check_in(db, actor, reservation_id)
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/payments", response_model=PaymentEventResponse)
async def record_payment(
    reservation_id: UUID,
    request: PaymentRecordRequest,
    actor: AdminActor,
    db: DbSession,
) -> PaymentEventResponse:
    """Record a payment received outside a gateway (staff only)."""
    await reservation_service.get_reservation(db, actor, reservation_id)
    result = await payment_handler.on_payment_event(
        db,
        reference=reservation_id,
        outcome=request.outcome,
        external_payment_id=request.external_payment_id,
        amount=request.amount,
        gateway="manual",
        payload={"recorded_by": str(actor.id)},
    )
    return PaymentEventResponse(
        duplicate=result.duplicate,
        applied=result.applied,
        result=result.result,
        reservation=ReservationResponse.model_validate(result.reservation),
    )
