from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from permits.schemas.primitives import Money


class PaymentIn(BaseModel):
    official_receipt_no: Optional[str] = None
    # ISO date string; parsed by the service so bad input maps to a domain error
    payment_date: Optional[str] = Field(default=None, examples=["2026-03-01"])
    amount: Decimal
    address: Optional[str] = None


class PaymentOut(BaseModel):
    id: uuid.UUID
    application_id: uuid.UUID
    official_receipt_no: str
    payment_date: date
    amount: Money
    address: Optional[str]
    recorded_by_id: uuid.UUID
    recorded_by_name: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_payment(cls, p, recorded_by_name: Optional[str] = None) -> "PaymentOut":
        return cls(
            id=p.id,
            application_id=p.application_id,
            official_receipt_no=p.official_receipt_no,
            payment_date=p.payment_date,
            amount=p.amount,
            address=p.address,
            recorded_by_id=p.recorded_by_id,
            recorded_by_name=recorded_by_name,
            created_at=p.created_at,
        )

    @classmethod
    def from_line(cls, line) -> "PaymentOut":
        return cls.from_payment(line.payment, line.recorded_by_name)


class PaymentSummaryOut(BaseModel):
    application_id: uuid.UUID
    status: str
    total_assessed: Money
    total_paid: Money
    outstanding: Money
    overpaid: Money
    payment_count: int
