"""Escrow money arithmetic.

Amounts are whole currency units held as Decimal. Rounding is half away
from zero, so 1.5 becomes 2 and -1.5 becomes -2.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

ADVANCE_SHARE = Decimal("0.10")
FINAL_SHARE = Decimal("0.90")
DEFAULT_COMMISSION_PERCENT = Decimal("5")

_WHOLE_UNIT = Decimal("1")


def round_whole(amount: Decimal) -> Decimal:
    """Round to whole currency units, half away from zero."""
    return amount.quantize(_WHOLE_UNIT, rounding=ROUND_HALF_UP)


def project_total(budget: Decimal, agreed_budget: Decimal | None) -> Decimal:
    """The amount a project is funded for: the locked budget if any."""
    return agreed_budget if agreed_budget is not None else budget


def advance_amount(total: Decimal) -> Decimal:
    return round_whole(total * ADVANCE_SHARE)


def final_amount(total: Decimal) -> Decimal:
    return round_whole(total * FINAL_SHARE)


def release_split(total: Decimal, commission_percent: Decimal | None) -> tuple[Decimal, Decimal]:
    """Split a released total into (platform commission, worker payout).

    The two parts always add up to ``total``; only the commission is rounded.
    """
    percent = DEFAULT_COMMISSION_PERCENT if commission_percent is None else commission_percent
    commission = round_whole(total * percent / Decimal(100))
    return commission, total - commission
