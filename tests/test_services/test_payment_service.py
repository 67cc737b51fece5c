"""Tests for the simulated payment gateway."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from project_escrow.services.payment_service import PaymentGateway

CLIENT_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
WORKER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")


class TestPaymentGateway:
    @pytest.mark.asyncio
    async def test_simulated_references(self) -> None:
        gateway = PaymentGateway()
        charge = await gateway.charge(uuid.uuid4(), CLIENT_ID, Decimal("1000"), "advance")
        release = await gateway.release(uuid.uuid4(), WORKER_ID, Decimal("9500"))

        assert charge.startswith("sim_")
        assert len(charge) == 28
        assert release.startswith("sim_")
        assert charge != release
