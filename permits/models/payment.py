#permits/models/payment.py
from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from permits.db.base import Base


def _now():
    return datetime.now(timezone.utc)


class Payment(Base):
    """
    Immutable payment record. Corrections are new rows, never edits.

    idempotency_key + request_hash let a client retry a POST without
    double-posting: same key + same payload replays, same key + different
    payload is refused.
    """

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("applications.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    official_receipt_no: Mapped[str] = mapped_column(String(64), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    recorded_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    idempotency_key: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    request_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )

    application = relationship("Application", back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        UniqueConstraint("application_id", "official_receipt_no", name="uq_payments_app_receipt"),
        UniqueConstraint("application_id", "idempotency_key", name="uq_payments_app_idem"),
        Index("ix_payments_app_date", "application_id", "payment_date"),
    )
