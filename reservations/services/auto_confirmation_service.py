"""Auto-confirmation rules: management and evaluation."""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.core.exceptions import AuthorizationError, NotFoundError
from reservations.core.permissions import Actor, can_manage_asset, require_admin
from reservations.database import utcnow
from reservations.domain.assets import AssetType, MANUAL_APPROVAL_ASSET_TYPES
from reservations.domain.auto_confirmation import CandidateContext, RuleDecision, select_rule
from reservations.domain.reservation_state import ReservationStatus
from reservations.domain.time_windows import RequestedWindow
from reservations.models.asset import Asset
from reservations.models.auto_confirmation import AutoConfirmationRule
from reservations.models.reservation import Reservation
from reservations.schemas.auto_confirmation import RuleCreate, RuleUpdate
from reservations.services.conflict_service import conflict_service

logger = logging.getLogger(__name__)

ACTIVE = "active"
ARCHIVED = "archived"


@dataclass
class ReservationCandidate:
    """A reservation being created, before it exists."""

    asset: Asset
    requested: RequestedWindow
    customer_id: UUID
    amount: int | None
    payment_method: str


class AutoConfirmationService:
    """Service for auto-confirmation rules."""

    # ==================== EVALUATION ====================

    async def decide(
        self,
        db: AsyncSession,
        candidate: ReservationCandidate,
        now: datetime | None = None,
    ) -> RuleDecision:
        """Decide whether a candidate reservation skips manual approval.

        The first enabled rule (ascending priority, oldest first) whose
        enabled condition groups all match wins, and its usage counters
        are bumped. No match means manual approval.
        """
        now = now or utcnow()
        asset = candidate.asset

        if AssetType(asset.asset_type) in MANUAL_APPROVAL_ASSET_TYPES:
            return RuleDecision(False, reason=f"{asset.asset_type} reservations require manual approval")

        rules = await self._active_rules(db, asset.id, enabled_only=True)
        if not rules:
            return RuleDecision(False, reason="no rule configured")

        ctx = await self.build_context(db, candidate, now)
        decision = select_rule([rule.to_evaluable() for rule in rules], ctx)

        if decision.auto_confirm:
            rule = next(r for r in rules if r.id == decision.matched_rule_id)
            rule.times_applied = (rule.times_applied or 0) + 1
            rule.last_applied_at = now
            logger.info(f"Auto-confirmation rule '{rule.name}' matched asset {asset.id}")
        else:
            logger.info(f"No auto-confirmation rule matched asset {asset.id}: {decision.reason}")
        return decision

    async def build_context(
        self,
        db: AsyncSession,
        candidate: ReservationCandidate,
        now: datetime,
    ) -> CandidateContext:
        """Gather the facts rule predicates are evaluated against."""
        asset = candidate.asset
        completed = await db.execute(
            select(func.count(Reservation.id)).where(
                Reservation.customer_id == candidate.customer_id,
                Reservation.status == ReservationStatus.COMPLETED.value,
            )
        )
        return CandidateContext(
            asset_type=asset.asset_type,
            customer_id=candidate.customer_id,
            quantity=candidate.requested.quantity,
            amount=candidate.amount,
            starts_at=candidate.requested.window.start,
            payment_method=candidate.payment_method,
            now=now,
            completed_reservations=completed.scalar_one(),
            has_conflict=await conflict_service.has_conflict(db, asset, candidate.requested),
            occupancy_percentage=await conflict_service.occupancy_percentage(
                db, asset, candidate.requested
            ),
            minutes_to_neighbor=await conflict_service.minutes_to_neighbor(
                db, asset, candidate.requested
            ),
        )

    async def _active_rules(
        self,
        db: AsyncSession,
        asset_id: UUID,
        enabled_only: bool = False,
    ) -> list[AutoConfirmationRule]:
        query = select(AutoConfirmationRule).where(
            AutoConfirmationRule.asset_id == asset_id,
            AutoConfirmationRule.lifecycle == ACTIVE,
        )
        if enabled_only:
            query = query.where(AutoConfirmationRule.enabled.is_(True))
        result = await db.execute(
            query.order_by(AutoConfirmationRule.priority, AutoConfirmationRule.created_at)
        )
        return list(result.scalars().all())

    # ==================== MANAGEMENT ====================

    async def _get_asset(self, db: AsyncSession, actor: Actor, asset_id: UUID) -> Asset:
        asset = await db.get(Asset, asset_id)
        if asset is None:
            raise NotFoundError("Asset", str(asset_id))
        if not can_manage_asset(actor, asset.partner_id):
            raise AuthorizationError("You can only manage rules for your own assets")
        return asset

    async def _get_rule(self, db: AsyncSession, actor: Actor, rule_id: UUID) -> AutoConfirmationRule:
        rule = await db.get(AutoConfirmationRule, rule_id)
        if rule is None or rule.lifecycle == ARCHIVED:
            raise NotFoundError("Auto-confirmation rule", str(rule_id))
        if not can_manage_asset(actor, rule.partner_id):
            raise AuthorizationError("You can only manage rules for your own assets")
        return rule

    @require_admin
    async def list_rules(
        self,
        db: AsyncSession,
        actor: Actor,
        asset_id: UUID,
    ) -> list[AutoConfirmationRule]:
        """List an asset's active rules in evaluation order."""
        await self._get_asset(db, actor, asset_id)
        return await self._active_rules(db, asset_id)

    @require_admin
    async def create_rule(
        self,
        db: AsyncSession,
        actor: Actor,
        data: RuleCreate,
    ) -> AutoConfirmationRule:
        """Create a rule for an asset."""
        asset = await self._get_asset(db, actor, data.asset_id)
        now = utcnow()
        rule = AutoConfirmationRule(
            asset_id=asset.id,
            asset_type=asset.asset_type,
            partner_id=asset.partner_id,
            organization_id=asset.organization_id,
            name=data.name,
            priority=data.priority,
            enabled=data.enabled,
            lifecycle=ACTIVE,
            conditions=data.conditions.model_dump(mode="json"),
            notify_customer=data.notify_customer,
            notify_partner=data.notify_partner,
            times_applied=0,
            created_by=actor.id,
            created_at=now,
            updated_at=now,
        )
        db.add(rule)
        await db.flush()
        logger.info(f"Auto-confirmation rule {rule.id} created for asset {asset.id} by {actor.id}")
        return rule

    @require_admin
    async def update_rule(
        self,
        db: AsyncSession,
        actor: Actor,
        rule_id: UUID,
        data: RuleUpdate,
    ) -> AutoConfirmationRule:
        """Update a rule's fields."""
        rule = await self._get_rule(db, actor, rule_id)
        changes = data.model_dump(exclude_unset=True)
        if "conditions" in changes and data.conditions is not None:
            changes["conditions"] = data.conditions.model_dump(mode="json")
        for field, value in changes.items():
            if value is not None:
                setattr(rule, field, value)
        rule.updated_at = utcnow()
        await db.flush()
        return rule

    @require_admin
    async def archive_rule(
        self,
        db: AsyncSession,
        actor: Actor,
        rule_id: UUID,
    ) -> AutoConfirmationRule:
        """Archive a rule; archived rules are never evaluated again."""
        rule = await self._get_rule(db, actor, rule_id)
        rule.lifecycle = ARCHIVED
        rule.enabled = False
        rule.updated_at = utcnow()
        await db.flush()
        logger.info(f"Auto-confirmation rule {rule.id} archived by {actor.id}")
        return rule


auto_confirmation_service = AutoConfirmationService()
