"""Payment Gateway: records escrow charges and releases.

Amounts are recorded, not moved. Each operation gets a ``sim_`` gateway
reference so ledger entries carry the same fields a provider would fill in.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from project_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from decimal import Decimal

logger = get_logger(__name__)


class PaymentGateway:
    """Produces simulated gateway references for escrow payments."""

    async def charge(
        self,
        project_id: uuid.UUID,
        payer_id: uuid.UUID,
        amount: Decimal,
        purpose: str,
    ) -> str:
        """Collect ``amount`` from the payer into escrow.

        Returns the gateway reference of the charge.
        """
        reference = _simulated_reference()
        logger.info(
            "payment.charge_simulated",
            project_id=str(project_id),
            payer_id=str(payer_id),
            amount=str(amount),
            purpose=purpose,
            reference=reference,
        )
        return reference

    async def release(
        self,
        project_id: uuid.UUID,
        payee_id: uuid.UUID,
        amount: Decimal,
    ) -> str:
        """Pay ``amount`` out of escrow to the payee."""
        reference = _simulated_reference()
        logger.info(
            "payment.release_simulated",
            project_id=str(project_id),
            payee_id=str(payee_id),
            amount=str(amount),
            reference=reference,
        )
        return reference


def _simulated_reference() -> str:
    return f"sim_{uuid.uuid4().hex[:24]}"
