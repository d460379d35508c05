from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from permits.core.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# largest value a Numeric(14, 2) column holds
MAX_MONEY = Decimal("999999999999.99")


def to_money(x: Any) -> Decimal:
    """
    Quantize to two fraction digits, round-half-up.
    Floats are routed through str() so 0.1 stays 0.10, not 0.1000000000000000055.
    Negative zero comes back as 0.00.
    """
    if isinstance(x, Decimal):
        d = x
    else:
        d = Decimal(str(x))
    return d.quantize(CENT, rounding=ROUND_HALF_UP) + ZERO


def parse_money(x: Any, *, field: str = "amount") -> Decimal:
    if x is None or isinstance(x, bool):
        raise ValidationError(f"{field} is required.", details={"field": field})
    if isinstance(x, str):
        x = x.strip().replace(",", "")
        if not x:
            raise ValidationError(f"{field} is required.", details={"field": field})
    try:
        d = Decimal(str(x))
        if not d.is_finite():
            raise InvalidOperation
        value = to_money(d)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid monetary value for {field}: {x!r}", details={"field": field})
    if abs(value) > MAX_MONEY:
        raise ValidationError(
            f"{field} is out of range (at most {MAX_MONEY}).",
            details={"field": field, "max": str(MAX_MONEY)},
        )
    return value


def parse_decimal(x: Any, *, field: str) -> Decimal:
    # numeric input without cent rounding (rates, parameter values)
    if x is None or isinstance(x, bool):
        raise ValidationError(f"{field} is required.", details={"field": field})
    raw = x.strip().replace(",", "") if isinstance(x, str) else x
    try:
        d = Decimal(str(raw))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid numeric value for {field}: {x!r}", details={"field": field})
    if not d.is_finite():
        raise ValidationError(f"Invalid numeric value for {field}: {x!r}", details={"field": field})
    return d


def sum_money(values: Iterable[Any]) -> Decimal:
    total = ZERO
    for v in values:
        total += to_money(v)
    return total
