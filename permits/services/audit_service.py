from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from permits.models.audit_log import AuditLogRecord

logger = logging.getLogger(__name__)


class AuditAction:
    # Aggregate
    CREATE_APP = "CREATE_APP"
    DELETE_APPLICATION = "DELETE_APPLICATION"
    RENEW_APP = "RENEW_APP"
    CHANGE_PERMIT_TYPE = "CHANGE_PERMIT_TYPE"

    # Assessment
    ASSESS_APP = "ASSESS_APP"
    REASSESS_APP = "REASSESS_APP"
    REASSESS_FEE = "REASSESS_FEE"
    ADD_FEE = "ADD_FEE"
    REMOVE_FEE = "REMOVE_FEE"
    ADD_PARAMETERS = "ADD_PARAMETERS"

    # Lifecycle
    SUBMIT_ASSESSMENT = "SUBMIT_ASSESSMENT"
    APPROVE_APP = "APPROVE_APP"
    REJECT_APP = "REJECT_APP"
    ISSUE_PERMIT = "ISSUE_PERMIT"
    RELEASE_PERMIT = "RELEASE_PERMIT"

    # Payments
    RECORD_PAYMENT = "RECORD_PAYMENT"
    MARK_PAID = "MARK_PAID"
    OVERPAYMENT_FLAGGED = "OVERPAYMENT_FLAGGED"


class AuditService:
    def record(
        self,
        db: Session,
        *,
        actor_id: Optional[uuid.UUID],
        action: str,
        description: str,
        application_id: Optional[uuid.UUID] = None,
        details: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> Optional[AuditLogRecord]:
        """
        Append-only audit insert inside the caller's transaction.

        The row goes into a SAVEPOINT: it commits with the business change, and
        a failed insert only rolls back the savepoint. The caller never sees an
        audit failure; it is logged instead.
        """
        row = AuditLogRecord(
            request_id=request_id,
            actor_id=actor_id,
            application_id=application_id,
            action=action,
            description=description,
            details_json=details or {},
        )
        try:
            with db.begin_nested():
                db.add(row)
        except SQLAlchemyError:
            logger.exception(
                "audit write failed",
                extra={"action": action, "application_id": str(application_id) if application_id else None},
            )
            return None
        return row

    def trail(self, db: Session, *, application_id: uuid.UUID) -> List[AuditLogRecord]:
        # newest first
        return list(
            db.execute(
                select(AuditLogRecord)
                .where(AuditLogRecord.application_id == application_id)
                .order_by(AuditLogRecord.created_at.desc())
            ).scalars().all()
        )

    def count(self, db: Session, *, application_id: uuid.UUID, action: str) -> int:
        return len(
            db.execute(
                select(AuditLogRecord.id).where(
                    AuditLogRecord.application_id == application_id,
                    AuditLogRecord.action == action,
                )
            ).all()
        )
