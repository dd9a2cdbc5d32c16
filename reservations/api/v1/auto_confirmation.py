"""Auto-confirmation rule endpoints (staff only)."""

from uuid import UUID

from fastapi import APIRouter, status

from reservations.api.deps import AdminActor, DbSession
from reservations.schemas.auto_confirmation import RuleCreate, RuleResponse, RuleUpdate
from reservations.services.auto_confirmation_service import auto_confirmation_service

router = APIRouter()


@router.post("/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    data: RuleCreate,
    actor: AdminActor,
    db: DbSession,
) -> RuleResponse:
    rule = await auto_confirmation_service.create_rule(db, actor, data)
    return RuleResponse.model_validate(rule)


@router.get("/rules", response_model=list[RuleResponse])
async def list_rules(
    asset_id: UUID,
    actor: AdminActor,
    db: DbSession,
) -> list[RuleResponse]:
    """Active rules of an asset, in evaluation order."""
    rules = await auto_confirmation_service.list_rules(db, actor, asset_id)
    return [RuleResponse.model_validate(r) for r in rules]


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: UUID,
    data: RuleUpdate,
    actor: AdminActor,
    db: DbSession,
) -> RuleResponse:
    rule = await auto_confirmation_service.update_rule(db, actor, rule_id, data)
    return RuleResponse.model_validate(rule)


@router.delete("/rules/{rule_id}", response_model=RuleResponse)
async def archive_rule(
    rule_id: UUID,
    actor: AdminActor,
    db: DbSession,
) -> RuleResponse:
    """Archive a rule. Rules are kept for their statistics, never hard-deleted."""
    rule = await auto_confirmation_service.archive_rule(db, actor, rule_id)
    return RuleResponse.model_validate(rule)
