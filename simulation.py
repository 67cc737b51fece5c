#!/usr/bin/env python3
"""Project Escrow: End-to-End Simulation.

Runs the lifecycle against the service layer with two users, ClientBot
and WorkerBot:

    Scenario 1: Happy Path
        - Client offers a 10000 project, worker accepts
        - Client pays the 1000 advance -> in_progress, 50%
        - Worker completes, client pays the 9000 final
        - Client rates 5 -> 500 commission, 9500 payout, completed_released

    Scenario 2: Rejected Offer
        - Client offers, worker rejects
        - Worker tries to accept afterwards -> INVALID_STATE_TRANSITION

    Scenario 3: Wrong Party
        - Client tries to accept its own offer -> NOT_AUTHORIZED

Usage:
    # Option A: SQLite in-memory (no services needed):
    python simulation.py --sqlite

    # Option B: Against the configured PostgreSQL database:
    python simulation.py

    # Run a specific scenario:
    python simulation.py --sqlite --scenario 1
"""

from __future__ import annotations

import argparse
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from project_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from project_escrow.domain.actor import Actor  # noqa: E402
from project_escrow.domain.exceptions import EscrowError  # noqa: E402
from project_escrow.infrastructure.database import engine as db  # noqa: E402
from project_escrow.infrastructure.database.orm_models import User  # noqa: E402
from project_escrow.infrastructure.database.repositories import UserRepository  # noqa: E402
from project_escrow.services.escrow_service import EscrowService  # noqa: E402
from project_escrow.services.notification_service import (  # noqa: E402
    NotificationDispatcher,
    QueuedNotifier,
)

# Module-level state
_engine = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine and create tables."""
    global _engine, _session_factory

    if use_sqlite:
        _engine = db.build_engine("sqlite+aiosqlite:///:memory:")
        await db.create_schema(_engine)
        _session_factory = db.build_session_factory(_engine)
        logger.info("database.sqlite_initialized")
    else:
        await db.init_db()
        _session_factory = db.get_session_factory()


async def shutdown_database() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
    else:
        await db.close_db()
    _session_factory = None


# ---------------------------------------------------------------------------
# Bots
# ---------------------------------------------------------------------------
@dataclass
class Bot:
    """A marketplace user issuing commands through the service layer."""

    name: str
    user_id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def actor(self) -> Actor:
        return Actor(user_id=self.user_id, name=self.name)


async def register(*bots: Bot) -> None:
    async with _session_factory() as session:
        for bot in bots:
            session.add(
                User(id=bot.user_id, name=bot.name, email=f"{bot.name.lower()}@example.com")
            )
        await session.commit()


async def run(command, *args, **kwargs):  # noqa: ANN001, ANN201
    """Run one service command in its own unit of work, then deliver notifications."""
    notifier = QueuedNotifier(NotificationDispatcher(_session_factory))
    async with _session_factory() as session:
        svc = EscrowService(session, notifier=notifier)
        try:
            result = await getattr(svc, command)(*args, **kwargs)
        except EscrowError:
            await session.rollback()
            raise
        await session.commit()
    await notifier.drain()
    return result


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    width = 64
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    print(f"\n--- {text} ---\n")


def print_project(project) -> None:  # noqa: ANN001
    print(f"  Status:    {project.status}")
    print(f"  Progress:  {project.progress_percent}%")
    print(f"  Advance:   {project.advance_amount}")
    print(f"  Final:     {project.final_amount}")
    if project.worker_payout_at is not None:
        print(f"  Commission:{project.platform_commission_amount:>8}")
        print(f"  Payout:    {project.worker_payout_amount}")


async def print_ledger(actor: Actor, project_id: uuid.UUID) -> None:
    async with _session_factory() as session:
        entries = await EscrowService(session).list_project_transactions(actor, project_id)
    print("\n  Ledger:")
    for i, txn in enumerate(entries, 1):
        print(f"    {i}. [{txn.type}] {txn.amount} {txn.currency} ref={txn.payment_gateway_ref or '-'}")
    print()


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------
async def scenario_1_happy_path() -> None:
    banner("Scenario 1: Happy Path")
    client, worker = Bot("ClientBot"), Bot("WorkerBot")
    await register(client, worker)

    section("Step 1: Client sends a 10000 offer")
    project = await run(
        "create_offer",
        client.actor,
        worker_id=worker.user_id,
        title="Marketplace landing page",
        description="Responsive landing page with a signup form",
        budget=Decimal("10000"),
        deadline=datetime.now(UTC) + timedelta(days=14),
    )
    print_project(project)

    section("Step 2: Worker accepts")
    project = await run("accept", worker.actor, project.id, agreed_timeline="Two weeks")
    print_project(project)

    section("Step 3: Client pays the advance")
    project = await run("pay_advance", client.actor, project.id)
    print_project(project)

    section("Step 4: Worker completes")
    project = await run("complete", worker.actor, project.id)
    print_project(project)

    section("Step 5: Client pays the final amount")
    project = await run("pay_final", client.actor, project.id)
    print_project(project)

    section("Step 6: Client rates 5, escrow is released")
    project = await run("rate", client.actor, project.id, rating=5, review="Great work")
    print_project(project)
    await print_ledger(client.actor, project.id)

    async with _session_factory() as session:
        rated = await UserRepository(session).get_by_id(worker.user_id)
    print(f"  Worker rating: {rated.rating} ({rated.rating_count} review)")


async def scenario_2_rejected_offer() -> None:
    banner("Scenario 2: Rejected Offer")
    client, worker = Bot("ClientBot2"), Bot("WorkerBot2")
    await register(client, worker)

    project = await run(
        "create_offer",
        client.actor,
        worker_id=worker.user_id,
        title="Logo design",
        budget=Decimal("2500"),
        deadline=datetime.now(UTC) + timedelta(days=7),
    )
    section("Step 1: Worker rejects")
    project = await run("reject", worker.actor, project.id)
    print_project(project)

    section("Step 2: Worker tries to accept anyway")
    try:
        await run("accept", worker.actor, project.id)
    except EscrowError as exc:
        print(f"  Refused: {exc.code} - {exc.message}")


async def scenario_3_wrong_party() -> None:
    banner("Scenario 3: Wrong Party")
    client, worker = Bot("ClientBot3"), Bot("WorkerBot3")
    await register(client, worker)

    project = await run(
        "create_offer",
        client.actor,
        worker_id=worker.user_id,
        title="Data cleanup",
        budget=Decimal("1999"),
        deadline=datetime.now(UTC) + timedelta(days=3),
    )
    section("Client tries to accept its own offer")
    try:
        await run("accept", client.actor, project.id)
    except EscrowError as exc:
        print(f"  Refused: {exc.code} - {exc.message}")


SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_rejected_offer,
    3: scenario_3_wrong_party,
}


async def main(use_sqlite: bool, scenario: int | None) -> None:
    await init_database(use_sqlite=use_sqlite)
    try:
        for number, runner in SCENARIOS.items():
            if scenario is None or scenario == number:
                await runner()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Project Escrow simulation")
    parser.add_argument("--sqlite", action="store_true", help="Use an in-memory SQLite database")
    parser.add_argument("--scenario", type=int, choices=sorted(SCENARIOS), default=None)
    args = parser.parse_args()
    asyncio.run(main(use_sqlite=args.sqlite, scenario=args.scenario))
