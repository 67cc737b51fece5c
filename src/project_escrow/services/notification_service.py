"""Notification Service: fire-and-forget fan-out of lifecycle events.

A transition produces one NotificationEvent for the counterparty and hands
it to a Notifier. Delivery happens after the transition's transaction has
committed and is strictly best-effort: a failing channel is logged and
never surfaces to the caller.

Channels:
    in-app : row in the recipient's inbox (always)
    email  : Brevo transactional email (project offers only)
    push   : FCM to every registered device (project offers only)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

import httpx
from firebase_admin import exceptions as firebase_exceptions
from sqlalchemy.exc import SQLAlchemyError

from project_escrow.domain.enums import DevicePlatform, NotificationType
from project_escrow.domain.exceptions import (
    DependencyError,
    NotificationNotFoundError,
    ValidationError,
)
from project_escrow.infrastructure.database.repositories import (
    DeviceTokenRepository,
    NotificationRepository,
)
from project_escrow.logging_config import get_logger
from project_escrow.services.email_templates import render_project_offer

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from project_escrow.domain.actor import Actor
    from project_escrow.infrastructure.database.orm_models import DeviceToken, Notification
    from project_escrow.infrastructure.email_client import BrevoEmailClient
    from project_escrow.infrastructure.push_client import FcmPushClient

logger = get_logger(__name__)

INBOX_LIMIT = 50


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class OfferEmail:
    """Details for the offer email sent to a worker."""

    to_email: str
    to_name: str
    from_name: str
    project_title: str
    description: str
    budget: Decimal
    deadline: datetime | None
    currency: str = "INR"


@dataclass(frozen=True)
class PushPayload:
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationEvent:
    """A lifecycle event addressed to one user."""

    user_id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    project_id: uuid.UUID | None = None
    offer_email: OfferEmail | None = None
    push: PushPayload | None = None


class Notifier(Protocol):
    """Accepts events for delivery. Must not raise on delivery failure."""

    async def notify(self, event: NotificationEvent) -> None: ...


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------
class NotificationDispatcher:
    """Delivers one event over every channel that applies to it.

    Each channel is attempted independently; the returned report says
    which ones succeeded.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        email_client: BrevoEmailClient | None = None,
        push_client: FcmPushClient | None = None,
        frontend_url: str = "http://localhost:3000",
    ) -> None:
        self._session_factory = session_factory
        self._email_client = email_client
        self._push_client = push_client
        self._frontend_url = frontend_url

    async def deliver(self, event: NotificationEvent) -> dict[str, bool]:
        report = {"in_app": await self._attempt("in_app", event, self._deliver_in_app)}
        if event.offer_email is not None and self._email_client is not None:
            report["email"] = await self._attempt("email", event, self._deliver_email)
        if event.push is not None and self._push_client is not None:
            report["push"] = await self._attempt("push", event, self._deliver_push)
        return report

    async def _attempt(
        self,
        channel: str,
        event: NotificationEvent,
        deliver: Callable[[NotificationEvent], Awaitable[None]],
    ) -> bool:
        try:
            await deliver(event)
        except DependencyError as exc:
            logger.warning(
                "notification.delivery_failed",
                channel=channel,
                user_id=str(event.user_id),
                type=event.type.value,
                error=exc.message,
            )
            return False
        except Exception:
            logger.exception(
                "notification.delivery_crashed",
                channel=channel,
                user_id=str(event.user_id),
                type=event.type.value,
            )
            return False
        return True

    async def _deliver_in_app(self, event: NotificationEvent) -> None:
        try:
            async with self._session_factory() as session:
                await NotificationRepository(session).create(
                    user_id=event.user_id,
                    type=event.type,
                    title=event.title,
                    message=event.message,
                    escrow_project_id=event.project_id,
                )
                await session.commit()
        except SQLAlchemyError as err:
            raise DependencyError("in_app", str(err)) from err

    async def _deliver_email(self, event: NotificationEvent) -> None:
        offer = event.offer_email
        subject, text, html = render_project_offer(
            from_name=offer.from_name,
            project_title=offer.project_title,
            description=offer.description,
            budget=offer.budget,
            deadline=offer.deadline,
            frontend_url=self._frontend_url,
            currency=offer.currency,
        )
        try:
            await self._email_client.send(
                to_email=offer.to_email,
                to_name=offer.to_name,
                subject=subject,
                text=text,
                html=html,
            )
        except httpx.HTTPError as err:
            raise DependencyError("email", str(err)) from err

    async def _deliver_push(self, event: NotificationEvent) -> None:
        try:
            async with self._session_factory() as session:
                devices = DeviceTokenRepository(session)
                tokens = await devices.tokens_for_user(event.user_id)
                if not tokens:
                    return
                result = await self._push_client.send(
                    tokens, event.push.title, event.push.body, event.push.data
                )
                if result.invalid_tokens:
                    await devices.prune(result.invalid_tokens)
                    await session.commit()
                    logger.info("push.tokens_pruned", count=len(result.invalid_tokens))
        except (firebase_exceptions.FirebaseError, ValueError, SQLAlchemyError) as err:
            raise DependencyError("push", str(err)) from err


class QueuedNotifier:
    """Holds events until ``drain`` is called after the caller has committed.

    For work outside a request (scripts, tests), where there is no response
    to hang background tasks on.
    """

    def __init__(self, dispatcher: NotificationDispatcher | None = None) -> None:
        self._dispatcher = dispatcher
        self.pending: list[NotificationEvent] = []

    async def notify(self, event: NotificationEvent) -> None:
        self.pending.append(event)

    async def drain(self) -> list[dict[str, bool]]:
        events, self.pending = self.pending, []
        if self._dispatcher is None:
            return []
        return [await self._dispatcher.deliver(event) for event in events]


# ---------------------------------------------------------------------------
# Inbox & Devices
# ---------------------------------------------------------------------------
class NotificationInboxService:
    """The actor's own inbox and push device registrations."""

    def __init__(self, session: AsyncSession) -> None:
        self._notifications = NotificationRepository(session)
        self._devices = DeviceTokenRepository(session)

    async def list_notifications(self, actor: Actor) -> list[Notification]:
        return await self._notifications.list_for_user(actor.user_id, limit=INBOX_LIMIT)

    async def mark_read(self, actor: Actor, notification_id: uuid.UUID) -> Notification:
        notification = await self._notifications.mark_read(notification_id, actor.user_id)
        if notification is None:
            raise NotificationNotFoundError(str(notification_id))
        return notification

    async def register_device(
        self, actor: Actor, token: str, platform: str | None = None
    ) -> DeviceToken:
        """Register a push token. Unknown platforms are stored as web."""
        token = (token or "").strip()
        if not token:
            raise ValidationError("Device token is required")
        try:
            resolved = DevicePlatform(platform or DevicePlatform.WEB.value)
        except ValueError:
            resolved = DevicePlatform.WEB
        device = await self._devices.upsert(actor.user_id, token, resolved.value)
        logger.info("device.registered", user_id=str(actor.user_id), platform=resolved.value)
        return device

    async def unregister_device(self, actor: Actor, token: str) -> None:
        token = (token or "").strip()
        if not token:
            raise ValidationError("Device token is required")
        await self._devices.remove(actor.user_id, token)
        logger.info("device.unregistered", user_id=str(actor.user_id))
