"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all initial tables for the reservation service:
- Assets
- Reservations and change history
- Auto-confirmation rules
- Payment events and payment links
- Vouchers
- Outbox messages
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# JSONB on PostgreSQL, plain JSON elsewhere
JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create all database tables."""

    # ==================== ASSETS ====================
    op.create_table(
        "assets",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("asset_type", sa.String(20), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("partner_id", sa.Uuid, index=True),
        sa.Column("organization_id", sa.Uuid, index=True),
        sa.Column("capacity", sa.Integer),
        sa.Column("min_quantity", sa.Integer, default=1),
        sa.Column("max_quantity", sa.Integer),
        sa.Column("slot_duration_minutes", sa.Integer),
        sa.Column("unit_price", sa.Integer, default=0),
        sa.Column("pricing_mode", sa.String(10), default="fixed"),
        sa.Column("currency", sa.String(3), default="BRL"),
        sa.Column("timezone", sa.String(50), default="America/Sao_Paulo"),
        sa.Column("is_active", sa.Boolean, default=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== RESERVATIONS ====================
    op.create_table(
        "reservations",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("confirmation_code", sa.String(120), unique=True, nullable=False, index=True),
        sa.Column("asset_type", sa.String(20), nullable=False),
        sa.Column("asset_id", sa.Uuid, sa.ForeignKey("assets.id"), nullable=False, index=True),
        sa.Column("customer_id", sa.Uuid, nullable=False, index=True),
        sa.Column("customer_name", sa.String(200)),
        sa.Column("customer_email", sa.String(255)),
        sa.Column("customer_phone", sa.String(40)),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("slot_date", sa.Date),
        sa.Column("slot_time", sa.String(5)),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("status", sa.String(30), nullable=False, index=True),
        sa.Column("payment_status", sa.String(30), nullable=False),
        sa.Column("payment_method", sa.String(20), default="card"),
        sa.Column("estimated_price", sa.Integer, nullable=False, default=0),
        sa.Column("final_price", sa.Integer),
        sa.Column("paid_amount", sa.Integer, default=0),
        sa.Column("currency", sa.String(3), default="BRL"),
        sa.Column("payment_deadline", sa.DateTime(timezone=True), index=True),
        sa.Column("payment_link_url", sa.Text),
        sa.Column("creation_method", sa.String(30), default="traveler"),
        sa.Column("created_by", sa.Uuid),
        sa.Column("details", JSON),
        sa.Column("special_requests", sa.Text),
        sa.Column("internal_notes", sa.Text),
        sa.Column("cancellation_reason", sa.Text),
        sa.Column("rejection_reason", sa.Text),
        sa.Column("auto_confirmed", sa.Boolean, default=False),
        sa.Column("matched_rule_id", sa.Uuid),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("no_show_at", sa.DateTime(timezone=True)),
        sa.Column("canceled_at", sa.DateTime(timezone=True)),
        sa.Column("rejected_at", sa.DateTime(timezone=True)),
        sa.Column("expired_at", sa.DateTime(timezone=True)),
    )
    op.create_index(
        "ix_reservations_asset_window",
        "reservations",
        ["asset_type", "asset_id", "start_at", "end_at"],
    )
    op.create_index("ix_reservations_asset_status", "reservations", ["asset_id", "status"])
    op.create_index("ix_reservations_asset_slot", "reservations", ["asset_id", "slot_date", "slot_time"])

    op.create_table(
        "reservation_change_history",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("reservation_id", sa.Uuid, sa.ForeignKey("reservations.id"), nullable=False, index=True),
        sa.Column("change_type", sa.String(40), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("actor_id", sa.Uuid),
        sa.Column("actor_role", sa.String(20)),
        sa.Column("from_status", sa.String(30)),
        sa.Column("to_status", sa.String(30)),
        sa.Column("data", JSON),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )

    # ==================== AUTO-CONFIRMATION ====================
    op.create_table(
        "auto_confirmation_rules",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("asset_id", sa.Uuid, sa.ForeignKey("assets.id"), nullable=False, index=True),
        sa.Column("asset_type", sa.String(20), nullable=False),
        sa.Column("partner_id", sa.Uuid),
        sa.Column("organization_id", sa.Uuid),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("priority", sa.Integer, nullable=False, default=100),
        sa.Column("enabled", sa.Boolean, default=True),
        sa.Column("lifecycle", sa.String(10), default="active"),
        sa.Column("conditions", JSON),
        sa.Column("notify_customer", sa.Boolean, default=True),
        sa.Column("notify_partner", sa.Boolean, default=True),
        sa.Column("times_applied", sa.Integer, default=0),
        sa.Column("last_applied_at", sa.DateTime(timezone=True)),
        sa.Column("created_by", sa.Uuid),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_auto_confirmation_rules_asset_priority",
        "auto_confirmation_rules",
        ["asset_id", "priority"],
    )

    # ==================== PAYMENTS ====================
    op.create_table(
        "payment_events",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("reservation_id", sa.Uuid, sa.ForeignKey("reservations.id"), nullable=False, index=True),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("external_payment_id", sa.String(255), nullable=False),
        sa.Column("gateway", sa.String(30)),
        sa.Column("amount", sa.Integer),
        sa.Column("currency", sa.String(3)),
        sa.Column("applied", sa.Boolean, default=False),
        sa.Column("result", sa.String(40)),
        sa.Column("payload", JSON),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "reservation_id",
            "outcome",
            "external_payment_id",
            name="uq_payment_events_reservation_outcome_external",
        ),
    )

    op.create_table(
        "payment_links",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("reservation_id", sa.Uuid, sa.ForeignKey("reservations.id"), nullable=False, index=True),
        sa.Column("gateway", sa.String(30), nullable=False),
        sa.Column("external_id", sa.String(255), index=True),
        sa.Column("url", sa.Text, nullable=False),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), default="BRL"),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "vouchers",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("reservation_id", sa.Uuid, sa.ForeignKey("reservations.id"), nullable=False, unique=True),
        sa.Column("voucher_number", sa.String(30), unique=True, nullable=False),
        sa.Column("verification_token", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), default="active"),
        sa.Column("issued_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== OUTBOX ====================
    op.create_table(
        "outbox_messages",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("kind", sa.String(40), nullable=False),
        sa.Column("reservation_id", sa.Uuid, sa.ForeignKey("reservations.id"), index=True),
        sa.Column("payload", JSON),
        sa.Column("dedupe_key", sa.String(64), unique=True, nullable=False),
        sa.Column("status", sa.String(20), default="pending"),
        sa.Column("attempts", sa.Integer, default=0),
        sa.Column("available_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_error", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("dispatched_at", sa.DateTime(timezone=True)),
    )
    op.create_index(
        "ix_outbox_messages_status_available",
        "outbox_messages",
        ["status", "available_at"],
    )


def downgrade() -> None:
    """Drop all database tables in reverse order."""
    op.drop_table("outbox_messages")
    op.drop_table("vouchers")
    op.drop_table("payment_links")
    op.drop_table("payment_events")
    op.drop_table("auto_confirmation_rules")
    op.drop_table("reservation_change_history")
    op.drop_table("reservations")
    op.drop_table("assets")
