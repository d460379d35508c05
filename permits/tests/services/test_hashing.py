from datetime import date
from decimal import Decimal

from permits.core.hashing import request_fingerprint


def test_amounts_compare_at_cent_precision():
    a = request_fingerprint({"amount": "650.00", "payment_date": "2026-03-01"})
    b = request_fingerprint({"amount": Decimal("650"), "payment_date": date(2026, 3, 1)})
    assert a == b
    assert len(a) == 64


def test_whitespace_and_missing_keys():
    assert request_fingerprint({"address": "Brgy.  1 \n Poblacion"}) == request_fingerprint(
        {"address": "Brgy. 1 Poblacion"}
    )
    assert request_fingerprint({"amount": Decimal("1"), "address": None}) == request_fingerprint(
        {"amount": Decimal("1.00")}
    )


def test_different_payloads_differ():
    base = {"official_receipt_no": "OR-1", "amount": Decimal("400.00")}
    assert request_fingerprint(base) != request_fingerprint({**base, "amount": Decimal("400.01")})
    assert request_fingerprint(base) != request_fingerprint({**base, "official_receipt_no": "OR-2"})
