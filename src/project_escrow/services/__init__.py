"""Application services: use case orchestration."""

from project_escrow.services.escrow_service import EscrowService
from project_escrow.services.ledger_service import LedgerService
from project_escrow.services.notification_service import (
    NotificationDispatcher,
    NotificationEvent,
    NotificationInboxService,
    Notifier,
    QueuedNotifier,
)
from project_escrow.services.payment_service import PaymentGateway
from project_escrow.services.review_service import ReviewService

__all__ = [
    "EscrowService",
    "LedgerService",
    "NotificationDispatcher",
    "NotificationEvent",
    "NotificationInboxService",
    "Notifier",
    "QueuedNotifier",
    "PaymentGateway",
    "ReviewService",
]
