from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from permits.db.base import Base, JSONType


def _now():
    return datetime.now(timezone.utc)


class AuditLogRecord(Base):
    """
    Audit trail record.
    - Append-only (never UPDATE, except application_id -> NULL when the
      application itself is deleted)
    - Stores request-id, actor, application, action code and a readable description.
    """
    __tablename__ = "audit_log_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )

    # Correlation
    request_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)

    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    application_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("applications.id", ondelete="SET NULL"), nullable=True
    )

    # What happened
    action: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g., APPROVE_APP
    description: Mapped[str] = mapped_column(Text, nullable=False)
    details_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_audit_application", "application_id"),
        Index("ix_audit_action", "action"),
        Index("ix_audit_created", "created_at"),
    )
