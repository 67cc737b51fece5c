"""Database infrastructure: engine, ORM models and repositories."""

from project_escrow.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    close_db,
    create_schema,
    get_async_session,
    get_session_factory,
    init_db,
)
from project_escrow.infrastructure.database.orm_models import (
    Base,
    DeviceToken,
    EscrowProject,
    Notification,
    Transaction,
    User,
    WorkerReview,
)
from project_escrow.infrastructure.database.repositories import (
    DeviceTokenRepository,
    NotificationRepository,
    ProjectRepository,
    ReviewRepository,
    TransactionRepository,
    UserRepository,
)

__all__ = [
    "Base",
    "DeviceToken",
    "EscrowProject",
    "Notification",
    "Transaction",
    "User",
    "WorkerReview",
    "DeviceTokenRepository",
    "NotificationRepository",
    "ProjectRepository",
    "ReviewRepository",
    "TransactionRepository",
    "UserRepository",
    "build_engine",
    "build_session_factory",
    "create_schema",
    "get_async_session",
    "get_session_factory",
    "init_db",
    "close_db",
]
