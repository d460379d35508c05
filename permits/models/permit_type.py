#permits/models/permit_type.py
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from permits.db.base import Base, JSONType


class PermitType(Base):
    __tablename__ = "permit_types"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"), default=True)

    # fixed: validity_date applies to every permit
    # custom: validity comes from the application's "Date" parameter
    validity_type: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=text("'fixed'"), default="fixed"
    )
    validity_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    rules = relationship("AssessmentRule", back_populates="permit_type", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("validity_type IN ('fixed','custom')", name="ck_permit_types_validity_type"),
    )


class AssessmentRule(Base):
    """
    Fee rule set for a permit type, optionally scoped to an attribute
    (e.g. business line). Unscoped rules apply when no scoped rule matches.
    """

    __tablename__ = "assessment_rules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    permit_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("permit_types.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attribute: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    rule_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"), default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    permit_type = relationship("PermitType", back_populates="rules")
    fees = relationship(
        "AssessmentRuleFee",
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="AssessmentRuleFee.fee_order",
    )


class AssessmentRuleFee(Base):
    __tablename__ = "assessment_rule_fees"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("assessment_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    fee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("fees.id", ondelete="RESTRICT"), nullable=False
    )

    # fixed override of the catalog default; ignored when formula_json is set
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    formula_json: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    fee_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"), default=0)

    rule = relationship("AssessmentRule", back_populates="fees")
    fee = relationship("Fee")

    __table_args__ = (
        CheckConstraint("amount IS NULL OR amount >= 0", name="ck_rule_fees_amount_nonneg"),
    )
