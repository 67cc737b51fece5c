"""initial schema: users, escrow projects, ledger, reviews, notifications, devices

Revision ID: 0001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("rating", sa.Float(), nullable=False, server_default="0"),
        sa.Column("rating_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("idx_users_email", "users", ["email"])

    op.create_table(
        "escrow_projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "client_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "worker_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "chat_with_user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("budget", sa.Numeric(14, 2), nullable=False),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("agreed_budget", sa.Numeric(14, 2), nullable=True),
        sa.Column("agreed_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("agreed_timeline", sa.Text(), nullable=False, server_default=""),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="offer_sent"),
        sa.Column("progress_percent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "milestones",
            postgresql.JSONB,
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("advance_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("advance_paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("final_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("final_paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "platform_commission_percent", sa.Numeric(5, 2), nullable=False, server_default="5"
        ),
        sa.Column(
            "platform_commission_amount", sa.Numeric(14, 2), nullable=False, server_default="0"
        ),
        sa.Column("worker_payout_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("worker_payout_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("review", sa.Text(), nullable=False, server_default=""),
        sa.Column("rated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(length=10), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('offer_sent', 'accepted', 'rejected', 'pending_advance', "
            "'in_progress', 'mid_level', 'completed', 'completed_released', 'cancelled')",
            name="ck_project_valid_status",
        ),
        sa.CheckConstraint("budget > 0", name="ck_project_positive_budget"),
        sa.CheckConstraint(
            "progress_percent >= 0 AND progress_percent <= 100",
            name="ck_project_progress_bounds",
        ),
        sa.CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="ck_project_rating_bounds",
        ),
        sa.CheckConstraint(
            "cancelled_by IS NULL OR cancelled_by IN ('client', 'worker', 'admin')",
            name="ck_project_cancelled_by",
        ),
        sa.CheckConstraint("client_id <> worker_id", name="ck_project_distinct_parties"),
    )
    op.create_index("idx_project_client", "escrow_projects", ["client_id"])
    op.create_index("idx_project_worker", "escrow_projects", ["worker_id"])
    op.create_index("idx_project_status", "escrow_projects", ["status"])
    op.create_index("idx_project_created_at", "escrow_projects", ["created_at"])

    op.create_table(
        "transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "escrow_project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("escrow_projects.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="INR"),
        sa.Column(
            "from_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True
        ),
        sa.Column(
            "to_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True
        ),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("payment_gateway_ref", sa.String(length=64), nullable=False, server_default=""),
        sa.Column(
            "metadata",
            postgresql.JSONB,
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "type IN ('advance_payment', 'final_payment', 'platform_commission', "
            "'worker_payout', 'refund')",
            name="ck_transaction_valid_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'refunded')",
            name="ck_transaction_valid_status",
        ),
        sa.CheckConstraint("amount >= 0", name="ck_transaction_non_negative_amount"),
    )
    op.create_index("idx_transaction_project", "transactions", ["escrow_project_id"])
    op.create_index("idx_transaction_from_user", "transactions", ["from_user_id"])
    op.create_index("idx_transaction_to_user", "transactions", ["to_user_id"])
    op.create_index("idx_transaction_created_at", "transactions", ["created_at"])

    op.create_table(
        "worker_reviews",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "worker_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "client_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "escrow_project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("escrow_projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("review", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("client_id", "escrow_project_id", name="uq_review_client_project"),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating_bounds"),
    )
    op.create_index("idx_review_worker", "worker_reviews", ["worker_id"])

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "escrow_project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("escrow_projects.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index("idx_notification_user", "notifications", ["user_id"])
    op.create_index("idx_notification_created_at", "notifications", ["created_at"])

    op.create_table(
        "device_tokens",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("token", sa.String(length=512), nullable=False),
        sa.Column("platform", sa.String(length=10), nullable=False, server_default="web"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "token", name="uq_device_user_token"),
    )
    op.create_index("idx_device_user", "device_tokens", ["user_id"])


def downgrade() -> None:
    op.drop_table("device_tokens")
    op.drop_table("notifications")
    op.drop_table("worker_reviews")
    op.drop_table("transactions")
    op.drop_table("escrow_projects")
    op.drop_table("users")
