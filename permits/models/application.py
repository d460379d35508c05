#permits/models/application.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from permits.core.statuses import ApplicationStatus
from permits.db.base import Base


def _now():
    return datetime.now(timezone.utc)


_STATUS_VALUES = ",".join(f"'{s.value}'" for s in ApplicationStatus)


class Application(Base):
    """
    Aggregate root: parameters, assessed fees and payments hang off it.

    `version` is the optimistic-lock column: every UPDATE is issued as
    ... WHERE id = :id AND version = :seen, so a stale writer fails instead of
    overwriting a newer status.
    """

    __tablename__ = "applications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # assigned on first assessment, immutable afterwards
    application_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, unique=True)

    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("entities.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    permit_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("permit_types.id", ondelete="RESTRICT"), nullable=False
    )
    permit_type_name: Mapped[str] = mapped_column(String(128), nullable=False)
    attribute: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ApplicationStatus.PENDING.value,
        server_default=text(f"'{ApplicationStatus.PENDING.value}'"),
    )

    creator_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    assessor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    issued_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # a date for fixed-validity permit types, free text for custom ones
    validity_date: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    permit_document_ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    released_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    received_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    renewed_from_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("applications.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    assessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    entity = relationship("Entity")
    permit_type = relationship("PermitType")

    parameters = relationship(
        "ApplicationParameter",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="ApplicationParameter.position",
    )
    assessed_fees = relationship(
        "AssessedFee",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="AssessedFee.position",
    )
    payments = relationship(
        "Payment",
        back_populates="application",
        order_by="[Payment.payment_date, Payment.created_at]",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_applications_status_valid"),
        Index("ix_applications_status", "status"),
        Index("ix_applications_created_at", "created_at"),
    )

    @property
    def status_enum(self) -> ApplicationStatus:
        return ApplicationStatus(self.status)


class ApplicationParameter(Base):
    """
    Free-form key/value describing the permit context. Names may repeat.
    """

    __tablename__ = "application_parameters"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    param_name: Mapped[str] = mapped_column(String(255), nullable=False)
    param_value: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )

    application = relationship("Application", back_populates="parameters")

    __table_args__ = (
        CheckConstraint("length(param_name) > 0", name="ck_app_params_name_nonempty"),
    )
