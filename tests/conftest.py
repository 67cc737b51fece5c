"""Shared test fixtures for the Project Escrow test suite.

Provides:
    - An in-memory SQLite database (aiosqlite) with the full schema
    - Seeded client / worker / outsider users and their actors
    - An EscrowService wired to a queued notifier that records events
    - A factory for driving a project through the lifecycle
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from project_escrow.config import Settings
from project_escrow.domain.actor import Actor
from project_escrow.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    create_schema,
)
from project_escrow.infrastructure.database.orm_models import User
from project_escrow.services.escrow_service import EscrowService
from project_escrow.services.notification_service import QueuedNotifier

CLIENT_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
WORKER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
OUTSIDER_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def users(session_factory) -> dict[str, User]:
    """Seed the three users every test works with."""
    seeded = {
        "client": User(id=CLIENT_ID, name="Asha Client", email="asha@example.com"),
        "worker": User(id=WORKER_ID, name="Ravi Worker", email="ravi@example.com"),
        "outsider": User(id=OUTSIDER_ID, name="Olu Outsider", email=None),
    }
    async with session_factory() as seed_session:
        seed_session.add_all(seeded.values())
        await seed_session.commit()
    return seeded


# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client_actor(users) -> Actor:
    return Actor(user_id=CLIENT_ID, name="Asha Client")


@pytest.fixture
def worker_actor(users) -> Actor:
    return Actor(user_id=WORKER_ID, name="Ravi Worker")


@pytest.fixture
def outsider_actor(users) -> Actor:
    return Actor(user_id=OUTSIDER_ID, name="Olu Outsider")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        escrow_currency="INR",
        escrow_platform_commission_percent=Decimal("5"),
        escrow_transactions_page_cap=200,
        email_enabled=False,
        push_enabled=False,
    )


@pytest.fixture
def notifier() -> QueuedNotifier:
    """Records events without delivering them."""
    return QueuedNotifier()


@pytest.fixture
def service(session, notifier, settings) -> EscrowService:
    return EscrowService(session, notifier=notifier, settings=settings)


@pytest.fixture
def deadline() -> datetime:
    return datetime.now(UTC) + timedelta(days=14)


@pytest.fixture
def make_offer(service, client_actor, deadline):
    """Create an offer from the seeded client to the seeded worker."""

    async def _make_offer(budget: Decimal = Decimal("10000"), title: str = "Landing page"):
        return await service.create_offer(
            client_actor,
            worker_id=WORKER_ID,
            title=title,
            description="Responsive landing page",
            budget=budget,
            deadline=deadline,
        )

    return _make_offer


@pytest.fixture
def drive(service, client_actor, worker_actor):
    """Run lifecycle steps on a project in order, each by its own party.

    Steps: accept, pay_advance, complete, pay_final, rate.
    """

    async def _drive(project, *steps: str):
        for step in steps:
            if step == "accept":
                project = await service.accept(worker_actor, project.id)
            elif step == "pay_advance":
                project = await service.pay_advance(client_actor, project.id)
            elif step == "complete":
                project = await service.complete(worker_actor, project.id)
            elif step == "pay_final":
                project = await service.pay_final(client_actor, project.id)
            elif step == "rate":
                project = await service.rate(client_actor, project.id, rating=5)
            else:
                raise ValueError(f"Unknown step {step}")
        return project

    return _drive
