"""
Shared fixtures: a file-backed SQLite database per test, actors and assets.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reservations.core.immutability import register_immutability_enforcement
from reservations.core.permissions import Actor, Role
from reservations.database import Base, close_db, configure_database, get_engine, utcnow
from reservations.models.asset import Asset

SessionFactory = async_sessionmaker[AsyncSession]


@pytest.fixture
async def session_factory(tmp_path: Any) -> AsyncGenerator[SessionFactory, None]:
    """Fresh SQLite database with all tables, bound as the app's database."""
    register_immutability_enforcement()
    factory = configure_database(f"sqlite+aiosqlite:///{tmp_path / 'reservations.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield factory

    await close_db()


@pytest.fixture
def now() -> datetime:
    return utcnow()


@pytest.fixture
def partner() -> Actor:
    return Actor(id=uuid.uuid4(), role=Role.PARTNER, name="Pousada Mar Azul")


@pytest.fixture
def employee() -> Actor:
    return Actor(id=uuid.uuid4(), role=Role.EMPLOYEE, name="Ana Staff")


@pytest.fixture
def traveler() -> Actor:
    return Actor(id=uuid.uuid4(), role=Role.TRAVELER, name="Maria Silva")


@pytest.fixture
def make_asset(
    session_factory: SessionFactory, partner: Actor
) -> Callable[..., Awaitable[Asset]]:
    """Factory persisting an asset owned by the ``partner`` fixture."""

    async def _make(asset_type: str = "vehicle", **overrides: Any) -> Asset:
        values: dict[str, Any] = {
            "asset_type": asset_type,
            "name": f"Test {asset_type}",
            "partner_id": partner.id,
            "unit_price": 10000,
            "pricing_mode": "fixed",
            "currency": "BRL",
            "timezone": "America/Sao_Paulo",
            "min_quantity": 1,
            "is_active": True,
        }
        if asset_type not in ("vehicle", "accommodation"):
            values.update(capacity=10, slot_duration_minutes=120)
        values.update(overrides)
        async with session_factory() as db:
            asset = Asset(**values)
            db.add(asset)
            await db.commit()
            return asset

    return _make
