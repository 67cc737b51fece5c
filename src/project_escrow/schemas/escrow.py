"""Pydantic schemas for the Escrow API.

These schemas define the request/response shapes for the REST API. They
are separate from the ORM models to keep the API and database layers
apart. Business rules (positive budget, rating range, role checks) are
enforced in the service layer so scripts get the same errors as HTTP
callers; the schemas only check shapes.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateOfferRequest(BaseModel):
    """Request body for a client sending a project offer to a worker."""

    worker_id: uuid.UUID = Field(..., description="User the offer is addressed to")
    title: str = Field(..., max_length=200, examples=["Landing page redesign"])
    description: str = Field(default="", max_length=5000)
    budget: Decimal = Field(..., description="Proposed total budget", examples=[10000])
    deadline: datetime | None = Field(default=None, description="Proposed deadline")


class AcceptOfferRequest(BaseModel):
    """Request body for a worker accepting an offer.

    Any term left out is locked at the proposed value.
    """

    agreed_budget: Decimal | None = None
    agreed_deadline: datetime | None = None
    agreed_timeline: str | None = Field(default=None, max_length=2000)


class Milestone(BaseModel):
    title: str = Field(..., max_length=200)
    description: str = Field(default="", max_length=2000)
    progress_percent: float | None = Field(default=None, allow_inf_nan=False)
    completed_at: datetime | None = None


class ProgressUpdateRequest(BaseModel):
    """Request body for a worker progress report. Both fields are optional."""

    progress_percent: float | None = Field(
        default=None, allow_inf_nan=False, description="Clamped to 0..100"
    )
    milestones: list[Milestone] | None = Field(
        default=None, description="Replaces the stored milestones"
    )


class RateRequest(BaseModel):
    """Request body for the client's rating, which releases escrow."""

    rating: int | None = Field(default=None, description="Whole number from 1 to 5")
    review: str | None = Field(default=None, max_length=5000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class ProjectResponse(BaseModel):
    """Response schema for an escrow project."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: uuid.UUID
    client_name: str | None
    worker_id: uuid.UUID
    worker_name: str | None
    chat_with_user_id: uuid.UUID

    title: str
    description: str
    budget: Decimal
    deadline: datetime

    agreed_budget: Decimal | None
    agreed_deadline: datetime | None
    agreed_timeline: str
    locked_at: datetime | None

    status: str
    progress_percent: int
    milestones: list[dict]

    advance_amount: Decimal
    advance_paid_at: datetime | None
    final_amount: Decimal
    final_paid_at: datetime | None
    platform_commission_percent: Decimal
    platform_commission_amount: Decimal
    worker_payout_amount: Decimal
    worker_payout_at: datetime | None

    rating: int | None
    review: str
    rated_at: datetime | None

    cancelled_by: str | None
    cancel_reason: str
    cancelled_at: datetime | None

    version: int
    created_at: datetime
    updated_at: datetime


class ProjectStatusResponse(BaseModel):
    """Lightweight status check response."""

    project_id: uuid.UUID
    status: str
    role: str
    allowed_events: list[str]
    actor_events: list[str] = Field(description="Allowed events this caller may issue")


class TransactionResponse(BaseModel):
    """Response schema for a ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    escrow_project_id: uuid.UUID | None
    project_title: str | None = None
    type: str
    amount: Decimal
    currency: str
    from_user_id: uuid.UUID | None
    from_user_name: str | None = None
    to_user_id: uuid.UUID | None
    to_user_name: str | None = None
    status: str
    payment_gateway_ref: str
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_json")
    created_at: datetime

    @classmethod
    def from_entry(cls, txn) -> TransactionResponse:  # noqa: ANN001
        """Build from a Transaction row, flattening project and party names."""
        response = cls.model_validate(txn)
        response.project_title = txn.project.title if txn.project is not None else None
        response.from_user_name = txn.from_user.name if txn.from_user is not None else None
        response.to_user_name = txn.to_user.name if txn.to_user is not None else None
        return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    redis: str
