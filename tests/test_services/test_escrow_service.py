"""Tests for the EscrowService lifecycle.

Runs every command against an in-memory SQLite database and checks the
project row, the ledger it leaves behind and the events handed to the
notifier.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import text

from project_escrow.domain.actor import Actor
from project_escrow.domain.enums import NotificationType, ProjectStatus, TransactionType
from project_escrow.domain.exceptions import (
    AuthorizationError,
    ConcurrencyConflictError,
    InvalidStateTransitionError,
    ProjectNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from project_escrow.infrastructure.database.orm_models import User
from project_escrow.services.escrow_service import EscrowService
from project_escrow.services.payment_service import PaymentGateway

CLIENT_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
WORKER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
OUTSIDER_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")


class TestHappyPath:
    """Offer through release on a 10000 budget."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, service, make_offer, drive, client_actor, worker_actor):
        project = await make_offer(Decimal("10000"))
        assert project.status == ProjectStatus.OFFER_SENT
        assert project.chat_with_user_id == WORKER_ID
        assert project.platform_commission_percent == Decimal("5")

        project = await service.accept(worker_actor, project.id, agreed_timeline=" Two weeks ")
        assert project.status == ProjectStatus.ACCEPTED
        assert project.agreed_budget == Decimal("10000")
        assert project.agreed_deadline == project.deadline
        assert project.agreed_timeline == "Two weeks"
        assert project.locked_at is not None

        project = await service.pay_advance(client_actor, project.id)
        assert project.status == ProjectStatus.IN_PROGRESS
        assert project.advance_amount == Decimal("1000")
        assert project.progress_percent == 50
        assert project.advance_paid_at is not None

        project = await service.complete(worker_actor, project.id)
        assert project.status == ProjectStatus.COMPLETED
        assert project.progress_percent == 100

        project = await service.pay_final(client_actor, project.id)
        assert project.status == ProjectStatus.COMPLETED
        assert project.final_amount == Decimal("9000")

        project = await service.rate(client_actor, project.id, rating=5, review=" Great work ")
        assert project.status == ProjectStatus.COMPLETED_RELEASED
        assert project.rating == 5
        assert project.review == "Great work"
        assert project.platform_commission_amount == Decimal("500")
        assert project.worker_payout_amount == Decimal("9500")
        assert project.worker_payout_at is not None

    @pytest.mark.asyncio
    async def test_ledger_entries(self, service, make_offer, drive, client_actor):
        project = await make_offer(Decimal("10000"))
        project = await drive(project, "accept", "pay_advance", "complete", "pay_final", "rate")

        entries = await service.list_project_transactions(client_actor, project.id)
        assert len(entries) == 4
        by_type = {e.type: e for e in entries}

        assert [e.type for e in entries[:2]] == ["advance_payment", "final_payment"]
        assert {e.type for e in entries[2:]} == {"platform_commission", "worker_payout"}

        assert by_type["advance_payment"].amount == Decimal("1000")
        assert by_type["advance_payment"].from_user_id == CLIENT_ID
        assert by_type["advance_payment"].to_user_id is None
        assert by_type["final_payment"].amount == Decimal("9000")
        assert by_type["platform_commission"].amount == Decimal("500")
        assert by_type["platform_commission"].from_user_id is None
        assert by_type["platform_commission"].to_user_id is None
        assert by_type["worker_payout"].amount == Decimal("9500")
        assert by_type["worker_payout"].to_user_id == WORKER_ID

        for entry in entries:
            assert entry.currency == "INR"
            assert entry.status == "completed"
        assert by_type["advance_payment"].payment_gateway_ref.startswith("sim_")

    @pytest.mark.asyncio
    async def test_notifications_go_to_counterparty(self, service, make_offer, drive, notifier):
        project = await make_offer()
        await drive(project, "accept", "pay_advance", "complete", "pay_final", "rate")

        assert [(e.type, e.user_id) for e in notifier.pending] == [
            (NotificationType.PROJECT_OFFER, WORKER_ID),
            (NotificationType.PROJECT_ACCEPTED, CLIENT_ID),
            (NotificationType.ADVANCE_PAID, WORKER_ID),
            (NotificationType.FINAL_PAYMENT_REQUIRED, CLIENT_ID),
            (NotificationType.FINAL_PAYMENT_REQUIRED, WORKER_ID),
            (NotificationType.PAYMENT_RELEASED, WORKER_ID),
        ]
        assert all(e.project_id == project.id for e in notifier.pending)
        assert "₹9,500" in notifier.pending[-1].message

    @pytest.mark.asyncio
    async def test_offer_event_carries_email_and_push(self, make_offer, notifier):
        project = await make_offer(title="Landing page")
        event = notifier.pending[0]

        assert event.title == "New Project Offer"
        assert event.message == 'You received a project offer: "Landing page" from Asha Client'
        assert event.offer_email is not None
        assert event.offer_email.to_email == "ravi@example.com"
        assert event.offer_email.budget == Decimal("10000")
        assert event.push.data == {
            "type": "project_offer",
            "projectId": str(project.id),
            "fromUserId": str(CLIENT_ID),
        }

    @pytest.mark.asyncio
    async def test_offer_to_worker_without_email(self, service, client_actor, deadline, notifier):
        await service.create_offer(
            client_actor,
            worker_id=OUTSIDER_ID,
            title="Logo",
            budget=Decimal("500"),
            deadline=deadline,
        )
        assert notifier.pending[0].offer_email is None
        assert notifier.pending[0].push is not None

    @pytest.mark.asyncio
    async def test_progress_is_silent(self, service, make_offer, worker_actor, notifier):
        project = await make_offer()
        notifier.pending.clear()
        await service.update_progress(worker_actor, project.id, progress_percent=30)
        assert notifier.pending == []


class TestAgreedTerms:
    @pytest.mark.asyncio
    async def test_agreed_budget_drives_amounts(self, service, make_offer, client_actor, worker_actor):
        project = await make_offer(Decimal("10000"))
        await service.accept(worker_actor, project.id, agreed_budget=Decimal("12345"))
        project = await service.pay_advance(client_actor, project.id)

        assert project.budget == Decimal("10000")
        assert project.advance_amount == Decimal("1235")

    @pytest.mark.asyncio
    async def test_non_positive_agreed_budget(self, service, make_offer, worker_actor):
        project = await make_offer()
        with pytest.raises(ValidationError):
            await service.accept(worker_actor, project.id, agreed_budget=Decimal("0"))

        project = await service.get_project(worker_actor, project.id)
        assert project.status == ProjectStatus.OFFER_SENT
        assert project.agreed_budget is None


class TestCreateOfferValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": "   "},
            {"budget": Decimal("0")},
            {"budget": Decimal("-10")},
            {"budget": "not a number"},
            {"deadline": None},
        ],
    )
    async def test_invalid_input(self, service, client_actor, deadline, overrides):
        kwargs = {
            "worker_id": WORKER_ID,
            "title": "Landing page",
            "budget": Decimal("10000"),
            "deadline": deadline,
        }
        kwargs.update(overrides)
        with pytest.raises(ValidationError):
            await service.create_offer(client_actor, **kwargs)

    @pytest.mark.asyncio
    async def test_offer_to_self(self, service, client_actor, deadline):
        with pytest.raises(ValidationError, match="yourself"):
            await service.create_offer(
                client_actor, worker_id=CLIENT_ID, title="Self", budget=Decimal("10"), deadline=deadline
            )

    @pytest.mark.asyncio
    async def test_unknown_worker(self, service, client_actor, deadline):
        with pytest.raises(UserNotFoundError):
            await service.create_offer(
                client_actor,
                worker_id=uuid.uuid4(),
                title="Ghost",
                budget=Decimal("10"),
                deadline=deadline,
            )

    @pytest.mark.asyncio
    async def test_failed_offer_sends_nothing(self, service, client_actor, deadline, notifier):
        with pytest.raises(ValidationError):
            await service.create_offer(
                client_actor, worker_id=WORKER_ID, title="", budget=Decimal("10"), deadline=deadline
            )
        assert notifier.pending == []


class TestInvalidTransitions:
    @pytest.mark.asyncio
    async def test_reject_after_accept(self, service, make_offer, drive, worker_actor, notifier):
        project = await drive(await make_offer(), "accept")
        sent = len(notifier.pending)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await service.reject(worker_actor, project.id)

        assert exc_info.value.current_state == "accepted"
        project = await service.get_project(worker_actor, project.id)
        assert project.status == ProjectStatus.ACCEPTED
        assert len(notifier.pending) == sent

    @pytest.mark.asyncio
    async def test_accept_after_reject(self, service, make_offer, worker_actor):
        project = await make_offer()
        await service.reject(worker_actor, project.id)
        with pytest.raises(InvalidStateTransitionError):
            await service.accept(worker_actor, project.id)

    @pytest.mark.asyncio
    async def test_double_final_payment(self, service, make_offer, drive, client_actor):
        project = await drive(await make_offer(), "accept", "pay_advance", "complete", "pay_final")

        with pytest.raises(InvalidStateTransitionError, match="already recorded"):
            await service.pay_final(client_actor, project.id)

        entries = await service.list_project_transactions(client_actor, project.id)
        assert [e.type for e in entries].count(TransactionType.FINAL_PAYMENT.value) == 1

    @pytest.mark.asyncio
    async def test_rate_before_final_payment(self, service, make_offer, drive, client_actor):
        project = await drive(await make_offer(), "accept", "pay_advance", "complete")

        with pytest.raises(InvalidStateTransitionError, match="final payment"):
            await service.rate(client_actor, project.id, rating=5)
        assert project.status == ProjectStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_nothing_after_release(self, service, make_offer, drive, client_actor):
        project = await drive(
            await make_offer(), "accept", "pay_advance", "complete", "pay_final", "rate"
        )
        with pytest.raises(InvalidStateTransitionError):
            await service.rate(client_actor, project.id, rating=4)
        with pytest.raises(InvalidStateTransitionError):
            await service.pay_final(client_actor, project.id)

    @pytest.mark.asyncio
    async def test_unknown_project(self, service, worker_actor):
        with pytest.raises(ProjectNotFoundError):
            await service.accept(worker_actor, uuid.uuid4())


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_client_cannot_accept(self, service, make_offer, client_actor):
        project = await make_offer()
        with pytest.raises(AuthorizationError) as exc_info:
            await service.accept(client_actor, project.id)

        assert exc_info.value.required_role == "worker"
        assert exc_info.value.code == "NOT_AUTHORIZED"
        assert project.status == ProjectStatus.OFFER_SENT

    @pytest.mark.asyncio
    async def test_worker_cannot_pay(self, service, make_offer, drive, worker_actor):
        project = await drive(await make_offer(), "accept")
        with pytest.raises(AuthorizationError):
            await service.pay_advance(worker_actor, project.id)
        assert project.advance_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_outsider_cannot_act(self, service, make_offer, outsider_actor):
        project = await make_offer()
        with pytest.raises(AuthorizationError):
            await service.reject(outsider_actor, project.id)

    @pytest.mark.asyncio
    async def test_role_checked_before_status(self, service, make_offer, drive, client_actor):
        project = await drive(await make_offer(), "accept")
        with pytest.raises(AuthorizationError):
            await service.reject(client_actor, project.id)

    @pytest.mark.asyncio
    async def test_outsider_cannot_read(self, service, make_offer, outsider_actor):
        project = await make_offer()
        with pytest.raises(AuthorizationError):
            await service.get_project(outsider_actor, project.id)
        with pytest.raises(AuthorizationError):
            await service.list_project_transactions(outsider_actor, project.id)
        with pytest.raises(AuthorizationError):
            await service.get_status(outsider_actor, project.id)


class TestProgress:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "requested,stored",
        [(150, 100), (-5, 0), (42.6, 43), (0, 0), (100, 100)],
    )
    async def test_percent_is_clamped(self, service, make_offer, worker_actor, requested, stored):
        project = await make_offer()
        project = await service.update_progress(worker_actor, project.id, progress_percent=requested)
        assert project.progress_percent == stored

    @pytest.mark.asyncio
    async def test_milestones_replace_list(self, service, make_offer, worker_actor):
        project = await make_offer()
        milestones = [
            {"title": " Wireframes ", "progress_percent": 120},
            {"title": "Build", "description": "Pages", "progress_percent": 40},
        ]
        await service.update_progress(worker_actor, project.id, milestones=milestones)
        project = await service.update_progress(
            worker_actor, project.id, progress_percent=60, milestones=milestones
        )

        assert project.progress_percent == 60
        assert project.milestones == [
            {"title": "Wireframes", "description": "", "progress_percent": 100, "completed_at": None},
            {"title": "Build", "description": "Pages", "progress_percent": 40, "completed_at": None},
        ]

    @pytest.mark.asyncio
    async def test_repeated_report_is_noop(self, service, make_offer, worker_actor):
        project = await make_offer()
        milestones = [{"title": "Design", "progress_percent": 30}, {"title": "Build"}]

        first = await service.update_progress(
            worker_actor, project.id, progress_percent=45, milestones=milestones
        )
        stored = (first.progress_percent, [dict(m) for m in first.milestones])
        second = await service.update_progress(
            worker_actor, project.id, progress_percent=45, milestones=milestones
        )

        assert (second.progress_percent, second.milestones) == stored
        assert second.status == ProjectStatus.OFFER_SENT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("percent", [float("nan"), float("inf"), float("-inf"), "50"])
    async def test_non_finite_percent_rejected(self, service, make_offer, worker_actor, percent):
        project = await make_offer()
        with pytest.raises(ValidationError, match="finite"):
            await service.update_progress(worker_actor, project.id, progress_percent=percent)
        with pytest.raises(ValidationError, match="finite"):
            await service.update_progress(
                worker_actor,
                project.id,
                milestones=[{"title": "Design", "progress_percent": percent}],
            )

    @pytest.mark.asyncio
    async def test_update_refreshes_timestamp(self, service, make_offer, worker_actor):
        project = await make_offer()
        created = project.updated_at

        project = await service.update_progress(worker_actor, project.id, progress_percent=10)

        assert project.updated_at > created

    @pytest.mark.asyncio
    async def test_milestone_needs_title(self, service, make_offer, worker_actor):
        project = await make_offer()
        with pytest.raises(ValidationError, match="Milestone title"):
            await service.update_progress(worker_actor, project.id, milestones=[{"title": ""}])

    @pytest.mark.asyncio
    async def test_client_cannot_report_progress(self, service, make_offer, client_actor):
        project = await make_offer()
        with pytest.raises(AuthorizationError):
            await service.update_progress(client_actor, project.id, progress_percent=10)

    @pytest.mark.asyncio
    async def test_progress_after_release(self, service, make_offer, drive, worker_actor):
        project = await drive(
            await make_offer(), "accept", "pay_advance", "complete", "pay_final", "rate"
        )
        project = await service.update_progress(worker_actor, project.id, progress_percent=80)
        assert project.progress_percent == 80
        assert project.status == ProjectStatus.COMPLETED_RELEASED


class TestRating:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6, None, True, 4.5, "5"])
    async def test_invalid_rating(self, service, make_offer, drive, client_actor, rating):
        project = await drive(await make_offer(), "accept", "pay_advance", "complete", "pay_final")

        with pytest.raises(ValidationError, match="Rating"):
            await service.rate(client_actor, project.id, rating=rating)

        assert project.status == ProjectStatus.COMPLETED
        entries = await service.list_project_transactions(client_actor, project.id)
        assert len(entries) == 2

    @pytest.mark.asyncio
    async def test_worker_rating_is_mean(self, service, session, make_offer, drive, client_actor):
        first = await drive(await make_offer(), "accept", "pay_advance", "complete", "pay_final")
        second = await drive(
            await make_offer(title="Second"), "accept", "pay_advance", "complete", "pay_final"
        )
        await service.rate(client_actor, first.id, rating=5)
        await service.rate(client_actor, second.id, rating=2)

        worker = await session.get(User, WORKER_ID)
        assert worker.rating == pytest.approx(3.5)
        assert worker.rating_count == 2


class TestReads:
    @pytest.mark.asyncio
    async def test_get_status_lists_actor_events(self, service, make_offer, client_actor, worker_actor):
        project = await make_offer()

        worker_view = await service.get_status(worker_actor, project.id)
        assert worker_view["status"] == "offer_sent"
        assert worker_view["role"] == "worker"
        assert worker_view["allowed_events"] == ["accept", "reject"]
        assert worker_view["actor_events"] == ["accept", "reject"]

        client_view = await service.get_status(client_actor, project.id)
        assert client_view["role"] == "client"
        assert client_view["actor_events"] == []

    @pytest.mark.asyncio
    async def test_completed_status_events(self, service, make_offer, drive, client_actor):
        project = await drive(await make_offer(), "accept", "pay_advance", "complete")
        status = await service.get_status(client_actor, project.id)
        assert status["allowed_events"] == ["pay_final"]

        await service.pay_final(client_actor, project.id)
        status = await service.get_status(client_actor, project.id)
        assert status["allowed_events"] == ["release"]

    @pytest.mark.asyncio
    async def test_list_projects(self, service, make_offer, client_actor, worker_actor, outsider_actor):
        await make_offer(title="One")
        await make_offer(title="Two")

        assert len(await service.list_projects(client_actor)) == 2
        assert len(await service.list_projects(worker_actor)) == 2
        assert await service.list_projects(outsider_actor) == []

    @pytest.mark.asyncio
    async def test_counterparty_listing_hides_rejected(self, service, make_offer, client_actor, worker_actor):
        rejected = await make_offer(title="Declined")
        await service.reject(worker_actor, rejected.id)
        live = await make_offer(title="Live")

        projects = await service.list_projects_with(client_actor, WORKER_ID)
        assert [p.id for p in projects] == [live.id]

        # Symmetric from the worker's side
        projects = await service.list_projects_with(worker_actor, CLIENT_ID)
        assert [p.id for p in projects] == [live.id]

    @pytest.mark.asyncio
    async def test_list_transactions_for_actor(self, service, make_offer, drive, client_actor, worker_actor):
        await drive(await make_offer(), "accept", "pay_advance", "complete", "pay_final", "rate")

        client_entries = await service.list_transactions(client_actor)
        assert {e.type for e in client_entries} == {"advance_payment", "final_payment"}

        worker_entries = await service.list_transactions(worker_actor)
        assert [e.type for e in worker_entries] == ["worker_payout"]


class TestCollaborators:
    @pytest.mark.asyncio
    async def test_gateway_charged_for_advance(self, session, notifier, settings, make_offer, drive):
        payments = AsyncMock(spec=PaymentGateway)
        payments.charge.return_value = "gw_charge_1"
        payments.release.return_value = "gw_release_1"
        custom = EscrowService(session, notifier=notifier, payments=payments, settings=settings)

        project = await drive(await make_offer(), "accept")
        await custom.pay_advance(Actor(user_id=CLIENT_ID), project.id)

        payments.charge.assert_awaited_once()
        _, payer, amount, purpose = payments.charge.await_args.args
        assert payer == CLIENT_ID
        assert amount == Decimal("1000")
        assert purpose == "advance"

        entries = await custom.list_project_transactions(Actor(user_id=CLIENT_ID), project.id)
        assert entries[0].payment_gateway_ref == "gw_charge_1"

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_fail_command(self, session, settings, client_actor, deadline):
        class BrokenNotifier:
            async def notify(self, event):
                raise RuntimeError("queue down")

        service = EscrowService(session, notifier=BrokenNotifier(), settings=settings)
        project = await service.create_offer(
            client_actor,
            worker_id=WORKER_ID,
            title="Resilient",
            budget=Decimal("100"),
            deadline=deadline,
        )
        assert project.status == ProjectStatus.OFFER_SENT

    @pytest.mark.asyncio
    async def test_concurrent_write_is_refused(self, service, session, make_offer, worker_actor):
        project = await make_offer()
        # Another writer bumps the row version behind this session's back
        await session.execute(text("UPDATE escrow_projects SET version = version + 1"))

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await service.accept(worker_actor, project.id)
        assert exc_info.value.code == "CONCURRENT_MODIFICATION"
