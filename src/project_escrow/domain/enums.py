"""Domain enumerations for the project escrow service.

Framework-agnostic: no SQLAlchemy or FastAPI imports. The string values
are what gets stored and returned over the API.
"""

import enum


class ProjectStatus(enum.StrEnum):
    """Lifecycle states of an escrow project.

    Transitions are enforced by ProjectStateMachine, see
    domain/state_machine.py for the table. PENDING_ADVANCE, MID_LEVEL and
    CANCELLED are reserved: stored data may carry them but no implemented
    transition leads into them.
    """

    OFFER_SENT = "offer_sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PENDING_ADVANCE = "pending_advance"
    IN_PROGRESS = "in_progress"
    MID_LEVEL = "mid_level"
    COMPLETED = "completed"
    COMPLETED_RELEASED = "completed_released"
    CANCELLED = "cancelled"


class PartyRole(enum.StrEnum):
    """Which side of a project an actor is on."""

    CLIENT = "client"
    WORKER = "worker"


class CancelledBy(enum.StrEnum):
    """Who cancelled a project (reserved, no cancel transition exists)."""

    CLIENT = "client"
    WORKER = "worker"
    ADMIN = "admin"


class TransactionType(enum.StrEnum):
    """Kinds of ledger entries.

    PLATFORM_COMMISSION and WORKER_PAYOUT are always written as a pair
    when a project is released.
    """

    ADVANCE_PAYMENT = "advance_payment"
    FINAL_PAYMENT = "final_payment"
    PLATFORM_COMMISSION = "platform_commission"
    WORKER_PAYOUT = "worker_payout"
    REFUND = "refund"


class TransactionStatus(enum.StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class NotificationType(enum.StrEnum):
    """In-app notification categories."""

    PROJECT_OFFER = "project_offer"
    PROJECT_ACCEPTED = "project_accepted"
    PROJECT_REJECTED = "project_rejected"
    ADVANCE_PAID = "advance_paid"
    PROJECT_MID_LEVEL = "project_mid_level"
    PROJECT_COMPLETED = "project_completed"
    FINAL_PAYMENT_REQUIRED = "final_payment_required"
    PAYMENT_RELEASED = "payment_released"
    PROJECT_CANCELLED = "project_cancelled"
    NEW_MESSAGE = "new_message"


class DevicePlatform(enum.StrEnum):
    ANDROID = "android"
    IOS = "ios"
    WEB = "web"
    WINDOWS = "windows"
    MAC = "mac"
