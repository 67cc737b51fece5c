"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.orm.exc import StaleDataError

from project_escrow.domain.exceptions import ConcurrencyConflictError
from project_escrow.infrastructure.database.orm_models import (
    DeviceToken,
    EscrowProject,
    Notification,
    Transaction,
    User,
    WorkerReview,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable
    from decimal import Decimal

    from sqlalchemy.ext.asyncio import AsyncSession

    from project_escrow.domain.enums import (
        NotificationType,
        ProjectStatus,
        TransactionStatus,
        TransactionType,
    )


class UserRepository:
    """Data access for the identity mirror and worker rating aggregates."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        return await self._session.get(User, user_id)

    async def update_rating(self, user: User, rating: float, rating_count: int) -> User:
        user.rating = rating
        user.rating_count = rating_count
        await self._session.flush()
        return user


class ProjectRepository:
    """Data access for escrow projects."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, project: EscrowProject) -> EscrowProject:
        """Insert a new project, with both parties loaded."""
        self._session.add(project)
        await self._session.flush()
        await self._session.refresh(project, attribute_names=["client", "worker"])
        return project

    async def get_by_id(self, project_id: uuid.UUID) -> EscrowProject | None:
        """Fetch a project by its UUID."""
        result = await self._session.execute(
            select(EscrowProject).where(EscrowProject.id == project_id)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: uuid.UUID) -> list[EscrowProject]:
        """All projects where the user is client or worker, newest first."""
        result = await self._session.execute(
            select(EscrowProject)
            .where(or_(EscrowProject.client_id == user_id, EscrowProject.worker_id == user_id))
            .order_by(EscrowProject.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_between(
        self,
        user_id: uuid.UUID,
        other_user_id: uuid.UUID,
        exclude_statuses: Iterable[ProjectStatus] = (),
    ) -> list[EscrowProject]:
        """Projects between two users in either role, newest first."""
        query = select(EscrowProject).where(
            or_(
                and_(
                    EscrowProject.client_id == user_id,
                    EscrowProject.worker_id == other_user_id,
                ),
                and_(
                    EscrowProject.client_id == other_user_id,
                    EscrowProject.worker_id == user_id,
                ),
            )
        )
        excluded = [s.value for s in exclude_statuses]
        if excluded:
            query = query.where(EscrowProject.status.not_in(excluded))
        result = await self._session.execute(query.order_by(EscrowProject.created_at.desc()))
        return list(result.scalars().all())

    async def save(self, project: EscrowProject) -> EscrowProject:
        """Flush pending changes, guarded by the project's version column.

        Raises:
            ConcurrencyConflictError: If another writer updated the row
                after this session loaded it.
        """
        try:
            await self._session.flush()
        except StaleDataError as err:
            raise ConcurrencyConflictError(str(project.id)) from err
        return project


class TransactionRepository:
    """Data access for the append-only ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        escrow_project_id: uuid.UUID | None,
        type: TransactionType,
        amount: Decimal,
        currency: str,
        status: TransactionStatus,
        from_user_id: uuid.UUID | None = None,
        to_user_id: uuid.UUID | None = None,
        payment_gateway_ref: str = "",
        metadata: dict | None = None,
    ) -> Transaction:
        """Append a ledger entry. This is the ONLY write operation allowed."""
        txn = Transaction(
            escrow_project_id=escrow_project_id,
            type=type.value,
            amount=amount,
            currency=currency,
            status=status.value,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            payment_gateway_ref=payment_gateway_ref,
            metadata_json=metadata or {},
        )
        self._session.add(txn)
        await self._session.flush()
        return txn

    async def list_for_user(self, user_id: uuid.UUID, limit: int) -> list[Transaction]:
        """Entries the user paid or received, newest first."""
        result = await self._session.execute(
            select(Transaction)
            .where(or_(Transaction.from_user_id == user_id, Transaction.to_user_id == user_id))
            .order_by(Transaction.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_for_project(self, escrow_project_id: uuid.UUID) -> list[Transaction]:
        """All entries of a project in chronological order."""
        result = await self._session.execute(
            select(Transaction)
            .where(Transaction.escrow_project_id == escrow_project_id)
            .order_by(Transaction.created_at.asc())
        )
        return list(result.scalars().all())


class ReviewRepository:
    """Data access for worker reviews."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, review: WorkerReview) -> WorkerReview:
        self._session.add(review)
        await self._session.flush()
        return review

    async def ratings_for_worker(self, worker_id: uuid.UUID) -> list[int]:
        """Every rating the worker has received."""
        result = await self._session.execute(
            select(WorkerReview.rating).where(WorkerReview.worker_id == worker_id)
        )
        return list(result.scalars().all())


class NotificationRepository:
    """Data access for the in-app notification inbox."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        user_id: uuid.UUID,
        type: NotificationType,
        title: str,
        message: str,
        escrow_project_id: uuid.UUID | None = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type.value,
            title=title,
            message=message,
            escrow_project_id=escrow_project_id,
        )
        self._session.add(notification)
        await self._session.flush()
        return notification

    async def list_for_user(self, user_id: uuid.UUID, limit: int = 50) -> list[Notification]:
        result = await self._session.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_read(
        self, notification_id: uuid.UUID, user_id: uuid.UUID
    ) -> Notification | None:
        """Mark one of the user's notifications read. Returns None if not theirs."""
        result = await self._session.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            return None
        if not notification.read:
            notification.read = True
            notification.read_at = datetime.now(UTC)
            await self._session.flush()
        return notification


class DeviceTokenRepository:
    """Data access for push device registrations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert(self, user_id: uuid.UUID, token: str, platform: str) -> DeviceToken:
        """Register a token, or refresh its platform if already registered."""
        result = await self._session.execute(
            select(DeviceToken).where(DeviceToken.user_id == user_id, DeviceToken.token == token)
        )
        device = result.scalar_one_or_none()
        if device is None:
            device = DeviceToken(user_id=user_id, token=token, platform=platform)
            self._session.add(device)
        else:
            device.platform = platform
            device.updated_at = datetime.now(UTC)
        await self._session.flush()
        return device

    async def remove(self, user_id: uuid.UUID, token: str) -> None:
        await self._session.execute(
            delete(DeviceToken).where(DeviceToken.user_id == user_id, DeviceToken.token == token)
        )

    async def tokens_for_user(self, user_id: uuid.UUID) -> list[str]:
        result = await self._session.execute(
            select(DeviceToken.token).where(DeviceToken.user_id == user_id)
        )
        return list(result.scalars().all())

    async def prune(self, tokens: Iterable[str]) -> None:
        """Drop tokens the push provider reported as invalid."""
        stale = list(tokens)
        if stale:
            await self._session.execute(delete(DeviceToken).where(DeviceToken.token.in_(stale)))
