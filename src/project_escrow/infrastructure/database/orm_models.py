"""SQLAlchemy 2.0 ORM models for the project escrow service.

Six tables:
    1. users            : Mirror of the identity service (name, email, public rating).
    2. escrow_projects  : The escrow aggregate: terms, status, derived money fields.
    3. transactions     : Append-only ledger of monetary events.
    4. worker_reviews   : One rating per (client, project), feeds users.rating.
    5. notifications    : In-app notification inbox.
    6. device_tokens    : Push registration tokens per user device.

Design decisions:
    - UUID primary keys; the generic Uuid/JSON types keep the models usable
      on SQLite for tests, with JSONB on PostgreSQL.
    - Decimal for money, whole currency units for every derived amount.
    - escrow_projects.version is the optimistic-lock column: an UPDATE that
      matches no row (someone else wrote first) raises StaleDataError.
    - transactions is append-only: an UPDATE is refused before flush.
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from project_escrow.domain.enums import (
    CancelledBy,
    ProjectStatus,
    TransactionStatus,
    TransactionType,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")
Money = Numeric(14, 2)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _one_of(column: str, values: type[enum.StrEnum], *, nullable: bool = False) -> str:
    """SQL CHECK expression restricting ``column`` to the members of ``values``."""
    allowed = ", ".join(f"'{member.value}'" for member in values)
    expression = f"{column} IN ({allowed})"
    return f"{column} IS NULL OR {expression}" if nullable else expression


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# Listeners
# ---------------------------------------------------------------------------
def _refuse_ledger_update(mapper, connection, target):  # noqa: ANN001
    raise ValueError(f"Ledger entry {target.id} is append-only and cannot be updated")


# ---------------------------------------------------------------------------
# 1. users
# ---------------------------------------------------------------------------
class User(Base):
    """A marketplace user as known to this service.

    Rows are provisioned by the identity service; this service only writes
    the aggregate ``rating`` / ``rating_count`` of workers.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, default=None)

    rating: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        comment="Arithmetic mean of all worker_reviews for this user",
    )
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (Index("idx_users_email", "email"),)

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# 2. escrow_projects
# ---------------------------------------------------------------------------
class EscrowProject(Base):
    """A project negotiated between a client and a worker, funded through escrow."""

    __tablename__ = "escrow_projects"

    # --- Primary Key ---
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Participants ---
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, comment="Party that pays"
    )
    worker_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, comment="Party that delivers"
    )
    chat_with_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        comment="User the client chatted with, used for chat-thread lookup",
    )

    # --- Proposed Terms (immutable after creation) ---
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    budget: Mapped[Decimal] = mapped_column(Money, nullable=False)
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # --- Locked Terms (set once, on accept) ---
    agreed_budget: Mapped[Decimal | None] = mapped_column(Money, nullable=True, default=None)
    agreed_deadline: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    agreed_timeline: Mapped[str] = mapped_column(Text, nullable=False, default="")
    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    # --- Status (guarded by ProjectStateMachine) ---
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="offer_sent")

    # --- Progress (worker-controlled, free-form) ---
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    milestones: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    # --- Money (written only by the state machine service) ---
    advance_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    advance_paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    final_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    final_paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    platform_commission_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal(5)
    )
    platform_commission_amount: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal(0)
    )
    worker_payout_amount: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal(0)
    )
    worker_payout_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    # --- Rating (set once, by the client) ---
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    review: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    # --- Cancellation (reserved, no transition writes these) ---
    cancelled_by: Mapped[str | None] = mapped_column(String(10), nullable=True, default=None)
    cancel_reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    # --- Optimistic Lock ---
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # --- Relationships ---
    client: Mapped[User] = relationship("User", foreign_keys=[client_id], lazy="joined")
    worker: Mapped[User] = relationship("User", foreign_keys=[worker_id], lazy="joined")

    __mapper_args__ = {"version_id_col": version}

    # --- Table Constraints & Indexes ---
    __table_args__ = (
        CheckConstraint(_one_of("status", ProjectStatus), name="ck_project_valid_status"),
        CheckConstraint("budget > 0", name="ck_project_positive_budget"),
        CheckConstraint(
            "progress_percent >= 0 AND progress_percent <= 100",
            name="ck_project_progress_bounds",
        ),
        CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="ck_project_rating_bounds",
        ),
        CheckConstraint(
            _one_of("cancelled_by", CancelledBy, nullable=True), name="ck_project_cancelled_by"
        ),
        CheckConstraint("client_id <> worker_id", name="ck_project_distinct_parties"),
        Index("idx_project_client", "client_id"),
        Index("idx_project_worker", "worker_id"),
        Index("idx_project_status", "status"),
        Index("idx_project_created_at", "created_at"),
    )

    @property
    def client_name(self) -> str | None:
        return self.client.name if self.client is not None else None

    @property
    def worker_name(self) -> str | None:
        return self.worker.name if self.worker is not None else None

    def __repr__(self) -> str:
        return (
            f"<EscrowProject id={self.id} status={self.status} "
            f"budget={self.agreed_budget or self.budget}>"
        )


# ---------------------------------------------------------------------------
# 3. transactions (Append-Only Ledger)
# ---------------------------------------------------------------------------
class Transaction(Base):
    """Immutable ledger entry for money moving in or out of escrow.

    A NULL ``to_user_id`` on a payment means the funds are held in escrow.
    """

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    escrow_project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("escrow_projects.id", ondelete="SET NULL"),
        nullable=True,
        comment="Project the entry is attributed to",
    )

    type: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    from_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True, default=None
    )
    to_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True, default=None
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payment_gateway_ref: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    metadata_json: Mapped[dict] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
        comment="Free-form context, e.g. a human-readable description",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    # --- Relationships ---
    project: Mapped[EscrowProject | None] = relationship("EscrowProject", lazy="selectin")
    from_user: Mapped[User | None] = relationship(
        "User", foreign_keys=[from_user_id], lazy="selectin"
    )
    to_user: Mapped[User | None] = relationship(
        "User", foreign_keys=[to_user_id], lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint(_one_of("type", TransactionType), name="ck_transaction_valid_type"),
        CheckConstraint(_one_of("status", TransactionStatus), name="ck_transaction_valid_status"),
        CheckConstraint("amount >= 0", name="ck_transaction_non_negative_amount"),
        Index("idx_transaction_project", "escrow_project_id"),
        Index("idx_transaction_from_user", "from_user_id"),
        Index("idx_transaction_to_user", "to_user_id"),
        Index("idx_transaction_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} type={self.type} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 4. worker_reviews
# ---------------------------------------------------------------------------
class WorkerReview(Base):
    """A client's rating of the worker on one project."""

    __tablename__ = "worker_reviews"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    worker_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    client_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    escrow_project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escrow_projects.id", ondelete="CASCADE"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    review: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("client_id", "escrow_project_id", name="uq_review_client_project"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating_bounds"),
        Index("idx_review_worker", "worker_id"),
    )

    def __repr__(self) -> str:
        return f"<WorkerReview id={self.id} worker={self.worker_id} rating={self.rating}>"


# ---------------------------------------------------------------------------
# 5. notifications
# ---------------------------------------------------------------------------
class Notification(Base):
    """An in-app notification shown in the user's inbox."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    escrow_project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("escrow_projects.id", ondelete="SET NULL"), nullable=True
    )
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_notification_user", "user_id"),
        Index("idx_notification_created_at", "created_at"),
    )


# ---------------------------------------------------------------------------
# 6. device_tokens
# ---------------------------------------------------------------------------
class DeviceToken(Base):
    """A push registration token for one of a user's devices."""

    __tablename__ = "device_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    token: Mapped[str] = mapped_column(String(512), nullable=False)
    platform: Mapped[str] = mapped_column(String(10), nullable=False, default="web")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_device_user_token"),
        Index("idx_device_user", "user_id"),
    )


# ---------------------------------------------------------------------------
# Listeners
# ---------------------------------------------------------------------------
event.listen(Transaction, "before_update", _refuse_ledger_update)
