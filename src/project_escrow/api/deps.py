"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database
sessions, the notifier, the payment gateway and the escrow service.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import TYPE_CHECKING

from fastapi import BackgroundTasks, Depends
from redis.exceptions import RedisError

from project_escrow.config import Settings, get_settings
from project_escrow.domain.exceptions import DuplicateOperationError
from project_escrow.infrastructure.database.engine import get_async_session, get_session_factory
from project_escrow.infrastructure.email_client import BrevoEmailClient
from project_escrow.infrastructure.push_client import FcmPushClient
from project_escrow.infrastructure.redis_client import claim_idempotency, release_idempotency
from project_escrow.logging_config import get_logger
from project_escrow.services.escrow_service import EscrowService
from project_escrow.services.notification_service import (
    NotificationDispatcher,
    NotificationEvent,
    Notifier,
)
from project_escrow.services.payment_service import PaymentGateway

if TYPE_CHECKING:
    import uuid
    from collections.abc import AsyncGenerator, AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from project_escrow.domain.actor import Actor

logger = get_logger(__name__)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_dispatcher() -> NotificationDispatcher:
    """Build the dispatcher once, with the channels enabled in settings."""
    settings = get_settings()
    email_client = None
    if settings.email_enabled and settings.brevo_api_key:
        email_client = BrevoEmailClient(
            api_key=settings.brevo_api_key,
            api_url=settings.brevo_api_url,
            sender_email=settings.email_from_address,
            sender_name=settings.email_from_name,
        )
    push_client = None
    if settings.push_configured:
        push_client = FcmPushClient(
            service_account_json=settings.firebase_service_account_json,
            credentials_path=settings.google_application_credentials,
            default_title=settings.push_default_title,
        )
    logger.info(
        "notification.dispatcher_ready",
        email=email_client is not None,
        push=push_client is not None,
    )
    return NotificationDispatcher(
        session_factory=get_session_factory(),
        email_client=email_client,
        push_client=push_client,
        frontend_url=settings.frontend_url,
    )


class BackgroundNotifier:
    """Schedules delivery to run after the response has been sent."""

    def __init__(self, background_tasks: BackgroundTasks, dispatcher: NotificationDispatcher) -> None:
        self._tasks = background_tasks
        self._dispatcher = dispatcher

    async def notify(self, event: NotificationEvent) -> None:
        self._tasks.add_task(self._dispatcher.deliver, event)


def get_notifier(background_tasks: BackgroundTasks) -> Notifier:
    return BackgroundNotifier(background_tasks, get_dispatcher())


def get_payment_gateway() -> PaymentGateway:
    return PaymentGateway()


def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
    payments: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_app_settings),
) -> EscrowService:
    return EscrowService(session, notifier=notifier, payments=payments, settings=settings)


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------
@asynccontextmanager
async def idempotency_guard(
    operation: str,
    actor: Actor,
    project_id: uuid.UUID,
    key: str | None,
) -> AsyncIterator[None]:
    """Run a money-moving command at most once per Idempotency-Key.

    The key is scoped to (operation, actor, project). It is released if the
    command fails so the caller can retry with the same key. Without Redis
    the command runs unguarded; the status guard still blocks a second
    charge.

    Raises:
        DuplicateOperationError: If the key was already used.
    """
    scoped = f"{operation}:{actor.user_id}:{project_id}:{key}" if key else None
    claimed = False
    if scoped is not None:
        try:
            claimed = await claim_idempotency(scoped)
        except (RuntimeError, RedisError) as exc:
            logger.warning("idempotency.unavailable", operation=operation, error=str(exc))
            scoped = None
        else:
            if not claimed:
                raise DuplicateOperationError(key)

    try:
        yield
    except Exception:
        if scoped is not None:
            try:
                await release_idempotency(scoped)
            except RedisError as exc:
                logger.warning("idempotency.release_failed", operation=operation, error=str(exc))
        raise
