"""Escrow project REST API routes.

One endpoint per lifecycle command. Mutating handlers commit before they
return so that notifications scheduled on the response see committed rows.

Routes:
    POST   /api/v1/escrow/projects                          Client sends an offer
    GET    /api/v1/escrow/projects                          Caller's projects
    GET    /api/v1/escrow/projects/chat/{other_user_id}     Projects with one counterparty
    GET    /api/v1/escrow/projects/{id}                     Project details
    GET    /api/v1/escrow/projects/{id}/status              Status + allowed events
    GET    /api/v1/escrow/projects/{id}/transactions        Project payment history
    POST   /api/v1/escrow/projects/{id}/accept              Worker accepts, locks terms
    POST   /api/v1/escrow/projects/{id}/reject              Worker declines
    POST   /api/v1/escrow/projects/{id}/advance-payment     Client pays 10%
    PATCH  /api/v1/escrow/projects/{id}/progress            Worker reports progress
    POST   /api/v1/escrow/projects/{id}/complete            Worker delivers
    POST   /api/v1/escrow/projects/{id}/final-payment       Client pays 90%
    POST   /api/v1/escrow/projects/{id}/rate                Client rates, escrow released
    GET    /api/v1/escrow/transactions                      Caller's ledger entries
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Body, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from project_escrow.api.deps import get_db_session, get_escrow_service, idempotency_guard
from project_escrow.api.identity import get_current_actor
from project_escrow.domain.actor import Actor
from project_escrow.schemas.escrow import (
    AcceptOfferRequest,
    CreateOfferRequest,
    ProgressUpdateRequest,
    ProjectResponse,
    ProjectStatusResponse,
    RateRequest,
    TransactionResponse,
)
from project_escrow.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/escrow", tags=["Escrow"])


# ---------------------------------------------------------------------------
# Offer
# ---------------------------------------------------------------------------


@router.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=201,
    summary="Send a project offer to a worker",
)
async def create_offer(
    request: CreateOfferRequest,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    project = await svc.create_offer(
        actor,
        worker_id=request.worker_id,
        title=request.title,
        description=request.description,
        budget=request.budget,
        deadline=request.deadline,
    )
    await session.commit()
    return ProjectResponse.model_validate(project)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


@router.get("/projects", response_model=list[ProjectResponse], summary="List my projects")
async def list_projects(
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[ProjectResponse]:
    projects = await svc.list_projects(actor)
    return [ProjectResponse.model_validate(p) for p in projects]


@router.get(
    "/projects/chat/{other_user_id}",
    response_model=list[ProjectResponse],
    summary="List live projects with one counterparty",
)
async def list_projects_with(
    other_user_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[ProjectResponse]:
    projects = await svc.list_projects_with(actor, other_user_id)
    return [ProjectResponse.model_validate(p) for p in projects]


@router.get("/projects/{project_id}", response_model=ProjectResponse, summary="Get a project")
async def get_project(
    project_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> ProjectResponse:
    project = await svc.get_project(actor, project_id)
    return ProjectResponse.model_validate(project)


@router.get(
    "/projects/{project_id}/status",
    response_model=ProjectStatusResponse,
    summary="Get status and allowed events",
)
async def get_project_status(
    project_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> ProjectStatusResponse:
    status = await svc.get_status(actor, project_id)
    return ProjectStatusResponse(**status)


@router.get(
    "/projects/{project_id}/transactions",
    response_model=list[TransactionResponse],
    summary="Get a project's payment history",
)
async def list_project_transactions(
    project_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[TransactionResponse]:
    entries = await svc.list_project_transactions(actor, project_id)
    return [TransactionResponse.from_entry(t) for t in entries]


@router.get(
    "/transactions",
    response_model=list[TransactionResponse],
    summary="List ledger entries I paid or received",
)
async def list_transactions(
    limit: int | None = Query(default=None, description="Clamped to 1..200"),
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[TransactionResponse]:
    entries = await svc.list_transactions(actor, limit)
    return [TransactionResponse.from_entry(t) for t in entries]


# ---------------------------------------------------------------------------
# Worker Response
# ---------------------------------------------------------------------------


@router.post(
    "/projects/{project_id}/accept",
    response_model=ProjectResponse,
    summary="Accept an offer and lock its terms",
)
async def accept_offer(
    project_id: uuid.UUID,
    request: AcceptOfferRequest | None = Body(default=None),
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    terms = request or AcceptOfferRequest()
    project = await svc.accept(
        actor,
        project_id,
        agreed_budget=terms.agreed_budget,
        agreed_deadline=terms.agreed_deadline,
        agreed_timeline=terms.agreed_timeline,
    )
    await session.commit()
    return ProjectResponse.model_validate(project)


@router.post(
    "/projects/{project_id}/reject",
    response_model=ProjectResponse,
    summary="Decline an offer",
)
async def reject_offer(
    project_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    project = await svc.reject(actor, project_id)
    await session.commit()
    return ProjectResponse.model_validate(project)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@router.post(
    "/projects/{project_id}/advance-payment",
    response_model=ProjectResponse,
    summary="Pay the 10% advance into escrow",
)
async def pay_advance(
    project_id: uuid.UUID,
    idempotency_key: str | None = Header(default=None),
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    async with idempotency_guard("advance-payment", actor, project_id, idempotency_key):
        project = await svc.pay_advance(actor, project_id)
        await session.commit()
    return ProjectResponse.model_validate(project)


@router.post(
    "/projects/{project_id}/final-payment",
    response_model=ProjectResponse,
    summary="Pay the remaining 90% into escrow",
)
async def pay_final(
    project_id: uuid.UUID,
    idempotency_key: str | None = Header(default=None),
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    async with idempotency_guard("final-payment", actor, project_id, idempotency_key):
        project = await svc.pay_final(actor, project_id)
        await session.commit()
    return ProjectResponse.model_validate(project)


@router.post(
    "/projects/{project_id}/rate",
    response_model=ProjectResponse,
    summary="Rate the worker and release escrow",
)
async def rate_worker(
    project_id: uuid.UUID,
    request: RateRequest,
    idempotency_key: str | None = Header(default=None),
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    async with idempotency_guard("rate", actor, project_id, idempotency_key):
        project = await svc.rate(actor, project_id, rating=request.rating, review=request.review)
        await session.commit()
    return ProjectResponse.model_validate(project)


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


@router.patch(
    "/projects/{project_id}/progress",
    response_model=ProjectResponse,
    summary="Report progress and milestones",
)
async def update_progress(
    project_id: uuid.UUID,
    request: ProgressUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    milestones = None
    if request.milestones is not None:
        milestones = [m.model_dump(mode="json") for m in request.milestones]
    project = await svc.update_progress(
        actor,
        project_id,
        progress_percent=request.progress_percent,
        milestones=milestones,
    )
    await session.commit()
    return ProjectResponse.model_validate(project)


@router.post(
    "/projects/{project_id}/complete",
    response_model=ProjectResponse,
    summary="Mark the work delivered",
)
async def complete_project(
    project_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    project = await svc.complete(actor, project_id)
    await session.commit()
    return ProjectResponse.model_validate(project)
