#permits/models/fee_catalog.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from permits.db.base import Base


class FeeCategory(Base):
    __tablename__ = "fee_categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    category_name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    fees = relationship("Fee", back_populates="category", order_by="Fee.fee_name")


class Fee(Base):
    """
    Master fee definition. Read-only to the assessment engine; assessed fees
    copy fee_name / category_name / amount at assessment time.
    """

    __tablename__ = "fees"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("fee_categories.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    fee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    default_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"), default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    category = relationship("FeeCategory", back_populates="fees")

    __table_args__ = (
        CheckConstraint("default_amount >= 0", name="ck_fees_default_amount_nonneg"),
    )
