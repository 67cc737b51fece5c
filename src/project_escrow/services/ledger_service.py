"""Ledger Service: append-only record of money moving through escrow.

Every money-moving transition writes at most two entries; the
platform_commission / worker_payout pair is always written together.
Entries are never updated or deleted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from project_escrow.config import get_settings
from project_escrow.domain.enums import TransactionStatus, TransactionType
from project_escrow.infrastructure.database.repositories import TransactionRepository
from project_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from decimal import Decimal

    from sqlalchemy.ext.asyncio import AsyncSession

    from project_escrow.infrastructure.database.orm_models import Transaction

logger = get_logger(__name__)


class LedgerService:
    """Writes and reads ledger entries."""

    def __init__(
        self,
        session: AsyncSession,
        currency: str | None = None,
        page_cap: int | None = None,
    ) -> None:
        settings = get_settings()
        self._repo = TransactionRepository(session)
        self._currency = currency or settings.escrow_currency
        self._page_cap = page_cap or settings.escrow_transactions_page_cap

    @property
    def page_cap(self) -> int:
        return self._page_cap

    async def record(
        self,
        project_id: uuid.UUID | None,
        type: TransactionType,
        amount: Decimal,
        from_user_id: uuid.UUID | None = None,
        to_user_id: uuid.UUID | None = None,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        gateway_ref: str = "",
        metadata: dict | None = None,
    ) -> Transaction:
        """Append one entry. A None ``to_user_id`` means held in escrow."""
        txn = await self._repo.record(
            escrow_project_id=project_id,
            type=type,
            amount=amount,
            currency=self._currency,
            status=status,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            payment_gateway_ref=gateway_ref,
            metadata=metadata,
        )
        logger.info(
            "ledger.recorded",
            transaction_id=str(txn.id),
            project_id=str(project_id) if project_id else None,
            type=type.value,
            amount=str(amount),
        )
        return txn

    def clamp_limit(self, limit: int | None) -> int:
        """Bound a requested page size to 1..page_cap."""
        if limit is None:
            return self._page_cap
        return max(1, min(limit, self._page_cap))

    async def list_for_user(self, user_id: uuid.UUID, limit: int | None = None) -> list[Transaction]:
        """Entries where the user is payer or payee, newest first."""
        return await self._repo.list_for_user(user_id, self.clamp_limit(limit))

    async def list_for_project(self, project_id: uuid.UUID) -> list[Transaction]:
        """A project's payment history, oldest first."""
        return await self._repo.list_for_project(project_id)
