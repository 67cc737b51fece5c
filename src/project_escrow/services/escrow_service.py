"""Escrow Service: core business logic for the project lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (transition guard + party roles)
    - Repositories (data access)
    - Ledger (append-only money history)
    - Reviews (worker rating aggregate)
    - Notifier (best-effort fan-out to the counterparty)

Every command follows the same order: load the project, check the actor's
role, check the status, validate input, then write. Nothing is written
until all checks pass. Ledger rows are added before the project row is
updated, and both are flushed in the caller's transaction.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from project_escrow.config import get_settings
from project_escrow.domain.actor import resolve_role
from project_escrow.domain.enums import (
    NotificationType,
    PartyRole,
    ProjectStatus,
    TransactionType,
)
from project_escrow.domain.exceptions import (
    AuthorizationError,
    InvalidStateTransitionError,
    ProjectNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from project_escrow.domain.money import (
    advance_amount,
    final_amount,
    project_total,
    release_split,
)
from project_escrow.domain.state_machine import EVENT_ROLES, allowed_events, fire
from project_escrow.infrastructure.database.orm_models import EscrowProject
from project_escrow.infrastructure.database.repositories import (
    ProjectRepository,
    UserRepository,
)
from project_escrow.logging_config import get_logger
from project_escrow.services.email_templates import format_amount
from project_escrow.services.ledger_service import LedgerService
from project_escrow.services.notification_service import (
    NotificationEvent,
    OfferEmail,
    PushPayload,
)
from project_escrow.services.payment_service import PaymentGateway
from project_escrow.services.review_service import ReviewService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from project_escrow.config import Settings
    from project_escrow.domain.actor import Actor
    from project_escrow.infrastructure.database.orm_models import Transaction
    from project_escrow.services.notification_service import Notifier

logger = get_logger(__name__)

# Counterparty listings hide offers that went nowhere.
_HIDDEN_FROM_CHAT = (ProjectStatus.REJECTED, ProjectStatus.CANCELLED)

MAX_RATING = 5
MIN_RATING = 1


class EscrowService:
    """Manages the escrow project lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier | None = None,
        payments: PaymentGateway | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._session = session
        self._projects = ProjectRepository(session)
        self._users = UserRepository(session)
        self._ledger = LedgerService(
            session,
            currency=self._settings.escrow_currency,
            page_cap=self._settings.escrow_transactions_page_cap,
        )
        self._reviews = ReviewService(session)
        self._payments = payments or PaymentGateway()
        self._notifier = notifier

    # ------------------------------------------------------------------
    # Offer
    # ------------------------------------------------------------------

    async def create_offer(
        self,
        actor: Actor,
        worker_id: uuid.UUID,
        title: str,
        budget: Decimal,
        deadline: datetime | None,
        description: str = "",
    ) -> EscrowProject:
        """Client proposes a project to a worker; status starts at offer_sent."""
        title = (title or "").strip()
        if not title:
            raise ValidationError("Project title is required")
        budget = _positive_amount(budget, "Budget")
        if deadline is None:
            raise ValidationError("Deadline is required")
        if worker_id == actor.user_id:
            raise ValidationError("You cannot send a project offer to yourself")

        worker = await self._users.get_by_id(worker_id)
        if worker is None:
            raise UserNotFoundError(str(worker_id))

        project = await self._projects.create(
            EscrowProject(
                client_id=actor.user_id,
                worker_id=worker_id,
                chat_with_user_id=worker_id,
                title=title,
                description=(description or "").strip(),
                budget=budget,
                deadline=deadline,
                status=ProjectStatus.OFFER_SENT.value,
                platform_commission_percent=self._settings.escrow_platform_commission_percent,
                milestones=[],
            )
        )

        client_name = actor.name or "A client"
        offer_email = None
        if worker.email:
            offer_email = OfferEmail(
                to_email=worker.email,
                to_name=worker.name,
                from_name=client_name,
                project_title=title,
                description=project.description,
                budget=budget,
                deadline=deadline,
                currency=self._settings.escrow_currency,
            )
        await self._notify(
            NotificationEvent(
                user_id=worker_id,
                type=NotificationType.PROJECT_OFFER,
                title="New Project Offer",
                message=f'You received a project offer: "{title}" from {client_name}',
                project_id=project.id,
                offer_email=offer_email,
                push=PushPayload(
                    title="New project offer",
                    body=f'{client_name} sent you a project offer: "{title}"',
                    data={
                        "type": NotificationType.PROJECT_OFFER.value,
                        "projectId": str(project.id),
                        "fromUserId": str(actor.user_id),
                    },
                ),
            )
        )

        logger.info(
            "escrow.offer_created",
            project_id=str(project.id),
            client_id=str(actor.user_id),
            worker_id=str(worker_id),
            budget=str(budget),
        )
        return project

    # ------------------------------------------------------------------
    # Worker Response
    # ------------------------------------------------------------------

    async def accept(
        self,
        actor: Actor,
        project_id: uuid.UUID,
        agreed_budget: Decimal | None = None,
        agreed_deadline: datetime | None = None,
        agreed_timeline: str | None = None,
    ) -> EscrowProject:
        """Worker accepts the offer and locks the terms.

        Terms left out fall back to the proposed budget and deadline.
        """
        project = await self._get_project_or_raise(project_id)
        new_status = self._fire_transition(project, actor, "accept")

        budget = project.budget if agreed_budget is None else _positive_amount(
            agreed_budget, "Agreed budget"
        )

        project.agreed_budget = budget
        project.agreed_deadline = agreed_deadline or project.deadline
        project.agreed_timeline = (agreed_timeline or "").strip()
        project.locked_at = _now()
        project.status = new_status.value
        await self._projects.save(project)

        await self._notify(
            NotificationEvent(
                user_id=project.client_id,
                type=NotificationType.PROJECT_ACCEPTED,
                title="Project Accepted",
                message=(
                    f'Worker accepted your project "{project.title}". '
                    "Advance payment (10%) required."
                ),
                project_id=project.id,
            )
        )

        logger.info(
            "escrow.accepted",
            project_id=str(project.id),
            agreed_budget=str(project.agreed_budget),
        )
        return project

    async def reject(self, actor: Actor, project_id: uuid.UUID) -> EscrowProject:
        """Worker declines the offer. Terminal."""
        project = await self._get_project_or_raise(project_id)
        new_status = self._fire_transition(project, actor, "reject")

        project.status = new_status.value
        await self._projects.save(project)

        await self._notify(
            NotificationEvent(
                user_id=project.client_id,
                type=NotificationType.PROJECT_REJECTED,
                title="Project Rejected",
                message=f'Worker declined your project offer "{project.title}"',
                project_id=project.id,
            )
        )

        logger.info("escrow.rejected", project_id=str(project.id))
        return project

    # ------------------------------------------------------------------
    # Advance Payment (10%)
    # ------------------------------------------------------------------

    async def pay_advance(self, actor: Actor, project_id: uuid.UUID) -> EscrowProject:
        """Client funds 10% of the total into escrow; work starts."""
        project = await self._get_project_or_raise(project_id)
        new_status = self._fire_transition(project, actor, "pay_advance")

        amount = advance_amount(project_total(project.budget, project.agreed_budget))
        reference = await self._payments.charge(project.id, actor.user_id, amount, "advance")

        await self._ledger.record(
            project.id,
            TransactionType.ADVANCE_PAYMENT,
            amount,
            from_user_id=actor.user_id,
            gateway_ref=reference,
            metadata={"description": "10% advance payment"},
        )

        project.advance_amount = amount
        project.advance_paid_at = _now()
        project.status = new_status.value
        project.progress_percent = 50
        await self._projects.save(project)

        await self._notify(
            NotificationEvent(
                user_id=project.worker_id,
                type=NotificationType.ADVANCE_PAID,
                title="Advance Payment Received",
                message=(
                    f'Advance payment (10%) received for "{project.title}". '
                    "Project is now In Progress."
                ),
                project_id=project.id,
            )
        )

        logger.info("escrow.advance_paid", project_id=str(project.id), amount=str(amount))
        return project

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def update_progress(
        self,
        actor: Actor,
        project_id: uuid.UUID,
        progress_percent: float | None = None,
        milestones: list[dict] | None = None,
    ) -> EscrowProject:
        """Worker reports progress. Allowed in any status, never notifies.

        Percentages are clamped to 0..100. ``milestones`` replaces the
        stored list as a whole.
        """
        project = await self._get_project_or_raise(project_id)
        self._require_role(project, actor, PartyRole.WORKER)

        if progress_percent is not None:
            project.progress_percent = _clamp_percent(progress_percent)
        if milestones is not None:
            project.milestones = [_normalize_milestone(m) for m in milestones]
        await self._projects.save(project)

        logger.info(
            "escrow.progress_updated",
            project_id=str(project.id),
            progress_percent=project.progress_percent,
            milestones=len(project.milestones),
        )
        return project

    async def complete(self, actor: Actor, project_id: uuid.UUID) -> EscrowProject:
        """Worker marks the work delivered; the client now owes 90%."""
        project = await self._get_project_or_raise(project_id)
        new_status = self._fire_transition(project, actor, "complete")

        project.status = new_status.value
        project.progress_percent = 100
        await self._projects.save(project)

        await self._notify(
            NotificationEvent(
                user_id=project.client_id,
                type=NotificationType.FINAL_PAYMENT_REQUIRED,
                title="Project Completed",
                message=(
                    f'Worker marked "{project.title}" as completed. '
                    "Final payment (90%) required."
                ),
                project_id=project.id,
            )
        )

        logger.info("escrow.completed", project_id=str(project.id))
        return project

    # ------------------------------------------------------------------
    # Final Payment (90%)
    # ------------------------------------------------------------------

    async def pay_final(self, actor: Actor, project_id: uuid.UUID) -> EscrowProject:
        """Client funds the remaining 90%. Status stays completed."""
        project = await self._get_project_or_raise(project_id)
        new_status = self._fire_transition(project, actor, "pay_final")
        if project.final_paid_at is not None:
            raise InvalidStateTransitionError(
                project.status, "pay_final", "final payment already recorded"
            )

        amount = final_amount(project_total(project.budget, project.agreed_budget))
        reference = await self._payments.charge(project.id, actor.user_id, amount, "final")

        await self._ledger.record(
            project.id,
            TransactionType.FINAL_PAYMENT,
            amount,
            from_user_id=actor.user_id,
            gateway_ref=reference,
            metadata={"description": "90% final payment"},
        )

        project.final_amount = amount
        project.final_paid_at = _now()
        project.status = new_status.value
        await self._projects.save(project)

        await self._notify(
            NotificationEvent(
                user_id=project.worker_id,
                type=NotificationType.FINAL_PAYMENT_REQUIRED,
                title="Final Payment Received",
                message=(
                    f'Final payment received for "{project.title}". '
                    "Awaiting your rating to release payment."
                ),
                project_id=project.id,
            )
        )

        logger.info("escrow.final_paid", project_id=str(project.id), amount=str(amount))
        return project

    # ------------------------------------------------------------------
    # Rating & Release
    # ------------------------------------------------------------------

    async def rate(
        self,
        actor: Actor,
        project_id: uuid.UUID,
        rating: int | None,
        review: str | None = None,
    ) -> EscrowProject:
        """Client rates the worker, which releases escrow.

        Splits the total into platform commission and worker payout, writes
        both ledger rows, and recomputes the worker's public rating.
        """
        project = await self._get_project_or_raise(project_id)
        new_status = self._fire_transition(project, actor, "release")
        if project.final_paid_at is None:
            raise InvalidStateTransitionError(
                project.status, "release", "final payment has not been made"
            )
        if (
            rating is None
            or isinstance(rating, bool)
            or not isinstance(rating, int)
            or not MIN_RATING <= rating <= MAX_RATING
        ):
            raise ValidationError(f"Rating must be a whole number from {MIN_RATING} to {MAX_RATING}")

        review_text = (review or "").strip()
        now = _now()
        total = project_total(project.budget, project.agreed_budget)
        commission, payout = release_split(total, project.platform_commission_percent)

        await self._reviews.add_review(
            worker_id=project.worker_id,
            client_id=actor.user_id,
            project_id=project.id,
            rating=rating,
            review=review_text,
        )

        reference = await self._payments.release(project.id, project.worker_id, payout)
        await self._ledger.record(
            project.id,
            TransactionType.PLATFORM_COMMISSION,
            commission,
            metadata={"description": f"{project.platform_commission_percent}% platform commission"},
        )
        await self._ledger.record(
            project.id,
            TransactionType.WORKER_PAYOUT,
            payout,
            to_user_id=project.worker_id,
            gateway_ref=reference,
            metadata={"description": "Payout to worker"},
        )

        project.rating = rating
        project.review = review_text
        project.rated_at = now
        project.platform_commission_amount = commission
        project.worker_payout_amount = payout
        project.worker_payout_at = now
        project.status = new_status.value
        await self._projects.save(project)

        await self._notify(
            NotificationEvent(
                user_id=project.worker_id,
                type=NotificationType.PAYMENT_RELEASED,
                title="Payment Released",
                message=(
                    f"Payment of {format_amount(payout, self._settings.escrow_currency)} "
                    f'released for "{project.title}"'
                ),
                project_id=project.id,
            )
        )

        logger.info(
            "escrow.released",
            project_id=str(project.id),
            rating=rating,
            commission=str(commission),
            payout=str(payout),
        )
        return project

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_project(self, actor: Actor, project_id: uuid.UUID) -> EscrowProject:
        """Get a project the actor is a party to."""
        project = await self._get_project_or_raise(project_id)
        self._require_party(project, actor)
        return project

    async def list_projects(self, actor: Actor) -> list[EscrowProject]:
        """Every project the actor is client or worker on, newest first."""
        return await self._projects.list_for_user(actor.user_id)

    async def list_projects_with(
        self, actor: Actor, other_user_id: uuid.UUID
    ) -> list[EscrowProject]:
        """Live projects between the actor and one counterparty."""
        return await self._projects.list_between(
            actor.user_id, other_user_id, exclude_statuses=_HIDDEN_FROM_CHAT
        )

    async def get_status(self, actor: Actor, project_id: uuid.UUID) -> dict:
        """Status with the events that can fire, and the ones this actor may issue."""
        project = await self._get_project_or_raise(project_id)
        role = self._require_party(project, actor)
        events = self._available_events(project)
        return {
            "project_id": str(project.id),
            "status": project.status,
            "role": role.value,
            "allowed_events": events,
            "actor_events": [e for e in events if EVENT_ROLES[e] is role],
        }

    async def list_project_transactions(
        self, actor: Actor, project_id: uuid.UUID
    ) -> list[Transaction]:
        """A project's payment history, oldest first. Parties only."""
        project = await self._get_project_or_raise(project_id)
        self._require_party(project, actor)
        return await self._ledger.list_for_project(project.id)

    async def list_transactions(self, actor: Actor, limit: int | None = None) -> list[Transaction]:
        """Ledger entries the actor paid or received, newest first."""
        return await self._ledger.list_for_user(actor.user_id, limit)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_project_or_raise(self, project_id: uuid.UUID) -> EscrowProject:
        project = await self._projects.get_by_id(project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def _require_party(self, project: EscrowProject, actor: Actor) -> PartyRole:
        role = resolve_role(actor.user_id, project.client_id, project.worker_id)
        if role is None:
            raise AuthorizationError(str(project.id))
        return role

    def _require_role(self, project: EscrowProject, actor: Actor, required: PartyRole) -> None:
        role = resolve_role(actor.user_id, project.client_id, project.worker_id)
        if role is not required:
            logger.warning(
                "escrow.unauthorized",
                project_id=str(project.id),
                actor_id=str(actor.user_id),
                required_role=required.value,
            )
            raise AuthorizationError(str(project.id), required.value)

    def _fire_transition(
        self, project: EscrowProject, actor: Actor, event_name: str
    ) -> ProjectStatus:
        """Check the actor's role, then the status guard.

        Returns the status the project moves to. Nothing is written here.
        """
        self._require_role(project, actor, EVENT_ROLES[event_name])
        return fire(project.status, event_name)

    def _available_events(self, project: EscrowProject) -> list[str]:
        events = allowed_events(project.status)
        if project.final_paid_at is not None:
            return [e for e in events if e != "pay_final"]
        return [e for e in events if e != "release"]

    async def _notify(self, event: NotificationEvent) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.notify(event)
        except Exception:
            logger.exception(
                "notification.schedule_failed",
                user_id=str(event.user_id),
                type=event.type.value,
            )


# ---------------------------------------------------------------------------
# Input normalization
# ---------------------------------------------------------------------------
def _now() -> datetime:
    return datetime.now(UTC)


def _positive_amount(value: Decimal | int | float | str | None, label: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as err:
        raise ValidationError(f"{label} must be a number") from err
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{label} must be greater than 0")
    return amount


def _clamp_percent(value: float) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError("Progress percent must be a finite number")
    return int(max(0, min(100, round(value))))


def _normalize_milestone(milestone: dict) -> dict:
    """Shape one milestone the way it is stored: a plain JSON object."""
    title = str(milestone.get("title") or "").strip()
    if not title:
        raise ValidationError("Milestone title is required")
    percent = milestone.get("progress_percent")
    completed_at = milestone.get("completed_at")
    if isinstance(completed_at, datetime):
        completed_at = completed_at.isoformat()
    return {
        "title": title,
        "description": str(milestone.get("description") or ""),
        "progress_percent": _clamp_percent(percent) if percent is not None else 0,
        "completed_at": completed_at,
    }
