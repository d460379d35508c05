from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple

from permits.core.exceptions import ValidationError
from permits.core.money import ZERO, parse_decimal, parse_money

FORMULA_KINDS = ("fixed", "per_unit", "percentage", "tiered")


def _param(params: Iterable[Tuple[str, str]], name: str) -> Decimal:
    """
    Numeric value of the first parameter called `name` (case-insensitive).
    """
    wanted = (name or "").strip().lower()
    for pname, pvalue in params:
        if (pname or "").strip().lower() == wanted:
            if pvalue is None or str(pvalue).strip() == "":
                break
            try:
                return parse_decimal(pvalue, field=name)
            except ValidationError:
                raise ValidationError(
                    f"Parameter '{name}' must be numeric, got {pvalue!r}.",
                    details={"field": "parameters", "parameter": name},
                )
    raise ValidationError(
        f"Parameter '{name}' is required to compute this fee.",
        details={"field": "parameters", "parameter": name},
    )


def _opt(formula: Dict[str, Any], key: str) -> Optional[Decimal]:
    raw = formula.get(key)
    if raw is None:
        return None
    return parse_decimal(raw, field=f"formula.{key}")


def _bounded(value: Decimal, formula: Dict[str, Any]) -> Decimal:
    minimum = _opt(formula, "minimum")
    maximum = _opt(formula, "maximum")
    if minimum is not None and value < minimum:
        value = minimum
    if maximum is not None and value > maximum:
        value = maximum
    return value


def _tiered(base: Decimal, tiers: Any) -> Decimal:
    """
    tiers: [{"up_to": "100000", "amount": "500"}, {"up_to": null, "amount": "1000"}]
    First tier whose up_to bound covers the base wins; up_to null is open-ended.
    """
    if not isinstance(tiers, list) or not tiers:
        raise ValidationError("formula.tiers must be a non-empty list.", details={"field": "formula.tiers"})
    for tier in tiers:
        up_to = tier.get("up_to")
        if up_to is None or base <= parse_decimal(up_to, field="formula.tiers.up_to"):
            return parse_decimal(tier.get("amount"), field="formula.tiers.amount")
    raise ValidationError(
        f"No tier covers value {base}.", details={"field": "formula.tiers", "value": str(base)}
    )


def evaluate_formula(formula: Dict[str, Any], params: Iterable[Tuple[str, str]]) -> Decimal:
    """
    Compute one fee amount from a formula and the application parameters.

    fixed       {"kind": "fixed", "amount": "500.00"}
    per_unit    {"kind": "per_unit", "param": "Area", "rate": "5.00", "minimum": "100.00"}
    percentage  {"kind": "percentage", "param": "Capital", "rate": "0.01", "minimum", "maximum"}
    tiered      {"kind": "tiered", "param": "Capital", "tiers": [...]}

    Results are rounded half-up to the cent and must not be negative.
    """
    if not isinstance(formula, dict):
        raise ValidationError("Fee formula must be an object.", details={"field": "formula"})
    params = list(params)
    kind = formula.get("kind")

    if kind == "fixed":
        value = parse_decimal(formula.get("amount"), field="formula.amount")
    elif kind in ("per_unit", "percentage"):
        base = _param(params, formula.get("param"))
        rate = parse_decimal(formula.get("rate"), field="formula.rate")
        value = _bounded(base * rate, formula)
    elif kind == "tiered":
        base = _param(params, formula.get("param"))
        value = _tiered(base, formula.get("tiers"))
    else:
        raise ValidationError(
            f"Unknown fee formula kind: {kind!r}",
            details={"field": "formula.kind", "allowed": list(FORMULA_KINDS)},
        )

    value = parse_money(value, field="formula")
    if value < ZERO:
        raise ValidationError(
            f"Fee formula produced a negative amount ({value}).", details={"field": "formula"}
        )
    return value
