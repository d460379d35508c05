from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from permits.core.money import to_money

# bump when the canonical form changes; stored hashes then stop matching
FINGERPRINT_VERSION = 1


def _canonical(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(to_money(value))
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return " ".join(value.split())
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def request_fingerprint(payload: Mapping[str, Any]) -> str:
    """
    sha256 of a request body in canonical form.

    Amounts are compared at cent precision and dates as ISO strings, so
    "650" and Decimal("650.00") produce the same fingerprint. Runs of
    whitespace in strings collapse to one space; None-valued keys are dropped.
    """
    body = {k: v for k, v in _canonical(payload).items() if v is not None}
    body["_v"] = FINGERPRINT_VERSION
    text = json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
