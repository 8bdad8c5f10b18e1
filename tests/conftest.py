"""Pytest configuration and fixtures for BudgetCalc tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from budgetcalc.config import reset_config
from budgetcalc.db.models import Base
from budgetcalc.models import Actor, ActorRole, LineItem, PendingBudgetChange


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Every test starts from default config, independent of the host env."""
    for name in (
        "ENVIRONMENT",
        "TAX_RATE",
        "DEFAULT_WASTE_PERCENT",
        "CONFLICT_THRESHOLD_PERCENT",
        "COST_CONFLICT_THRESHOLD_PERCENT",
        "MATERIAL_COUNT_TOLERANCE",
        "CONFLICT_CRITICAL_PERCENT",
        "CONFLICT_MODERATE_PERCENT",
        "NARRATIVE_TIMEOUT_SECONDS",
        "SLACK_WEBHOOK_URL",
        "SLACK_NOTIFICATIONS_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def test_project_id() -> str:
    """Test project ID."""
    return "test-project"


@pytest.fixture
def owner() -> Actor:
    return Actor(user_id="owner-1", role=ActorRole.OWNER)


@pytest.fixture
def foreman() -> Actor:
    return Actor(user_id="foreman-1", role=ActorRole.FOREMAN)


@pytest.fixture
def worker() -> Actor:
    return Actor(user_id="worker-1", role=ActorRole.WORKER)


@pytest.fixture
def laminate_item() -> LineItem:
    """Unpriced laminate measured by area, as a photo estimate delivers it."""
    return LineItem(
        id="mat-laminate",
        name="Laminate flooring",
        quantity=Decimal("250"),
        unit="sq ft",
        unit_price=Decimal("0"),
    )


@pytest.fixture
def drywall_item() -> LineItem:
    """Priced item: 10 sheets at 20.00."""
    return LineItem(
        id="mat-drywall",
        name="Drywall sheets",
        quantity=Decimal("10"),
        unit="sheet",
        unit_price=Decimal("20.00"),
        total_price=Decimal("200.00"),
        citation_id="[TMPL-001]",
    )


@pytest.fixture
def notifications() -> list[PendingBudgetChange]:
    """Changes passed to the recording notifier, in call order."""
    return []


@pytest.fixture
def recording_notifier(notifications):
    return notifications.append


@pytest_asyncio.fixture
async def db_session():
    """In-memory SQLite session with all tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()
