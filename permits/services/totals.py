from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from permits.core.money import ZERO, sum_money
from permits.models.assessed_fee import AssessedFee
from permits.models.payment import Payment


def total_assessed(fees: Iterable[AssessedFee]) -> Decimal:
    # exact decimal sum; never a float or SQL SUM
    return sum_money(f.assessed_amount for f in fees)


def total_paid(payments: Iterable[Payment]) -> Decimal:
    return sum_money(p.amount for p in payments)


def outstanding(total: Decimal, paid: Decimal) -> Decimal:
    return max(total - paid, ZERO)


def overpaid(total: Decimal, paid: Decimal) -> Decimal:
    return max(paid - total, ZERO)
