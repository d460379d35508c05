#permits/models/assessed_fee.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from permits.db.base import Base, JSONType


def _now():
    return datetime.now(timezone.utc)


class AssessedFee(Base):
    """
    One fee line computed for one application.

    fee_name / category_name are copies taken at assessment time so later
    catalog edits never rewrite an assessment. locked_at is stamped when the
    application leaves the editable states.
    """

    __tablename__ = "assessed_fees"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # NULL for ad-hoc lines
    fee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("fees.id", ondelete="SET NULL"), nullable=True
    )
    fee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    assessed_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"), default=0)

    formula_json: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    is_adhoc: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"), default=False)

    assessed_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    application = relationship("Application", back_populates="assessed_fees")

    __table_args__ = (
        CheckConstraint("assessed_amount >= 0", name="ck_assessed_fees_amount_nonneg"),
    )

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None
