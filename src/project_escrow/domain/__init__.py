"""Domain layer: pure business logic with zero framework dependencies."""

from project_escrow.domain.actor import Actor, resolve_role
from project_escrow.domain.enums import (
    NotificationType,
    PartyRole,
    ProjectStatus,
    TransactionStatus,
    TransactionType,
)
from project_escrow.domain.exceptions import (
    AuthorizationError,
    EscrowError,
    InvalidStateTransitionError,
    ProjectNotFoundError,
    ValidationError,
)
from project_escrow.domain.state_machine import (
    EVENT_ROLES,
    ProjectStateMachine,
    allowed_events,
    fire,
)

__all__ = [
    "Actor",
    "resolve_role",
    "NotificationType",
    "PartyRole",
    "ProjectStatus",
    "TransactionStatus",
    "TransactionType",
    "AuthorizationError",
    "EscrowError",
    "InvalidStateTransitionError",
    "ProjectNotFoundError",
    "ValidationError",
    "EVENT_ROLES",
    "ProjectStateMachine",
    "allowed_events",
    "fire",
]
