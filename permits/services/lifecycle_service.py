from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union

from sqlalchemy.orm import Session

from permits.core.config import get_settings
from permits.core.exceptions import ConflictError, InvalidTransitionError, ValidationError
from permits.core.money import ZERO, to_money
from permits.core.status_graph import as_status
from permits.core.status_graph import can_transition as _can_transition
from permits.core.statuses import ApplicationStatus
from permits.models.application import Application
from permits.models.permit_type import PermitType
from permits.policies.rbac import Capability, Principal, require_capability
from permits.services.assessment_service import AssessmentService
from permits.services.application_lock import guarded_write, lock_application
from permits.services.audit_service import AuditAction, AuditService
from permits.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

S = ApplicationStatus
C = Capability

# parameter carrying the validity of custom-validity permit types
VALIDITY_PARAMETER = "Date"

# status -> (action, capabilities that may attempt it)
_ACTIONS: Dict[ApplicationStatus, List[Tuple[str, Tuple[Capability, ...]]]] = {
    S.PENDING: [
        ("assess", (C.CAN_ASSESS,)),
        ("add_parameters", (C.CAN_ASSESS,)),
        ("change_permit_type", (C.CAN_CREATE_APPLICATION, C.CAN_ASSESS)),
    ],
    S.ASSESSED: [
        ("reassess", (C.CAN_ASSESS,)),
        ("add_parameters", (C.CAN_ASSESS,)),
        ("update_fee", (C.CAN_ASSESS, C.CAN_APPROVE)),
        ("add_fee", (C.CAN_ASSESS,)),
        ("remove_fee", (C.CAN_ASSESS,)),
        ("submit", (C.CAN_ASSESS,)),
    ],
    S.PENDING_APPROVAL: [
        ("update_fee", (C.CAN_ASSESS, C.CAN_APPROVE)),
        ("approve", (C.CAN_APPROVE,)),
        ("reject", (C.CAN_APPROVE,)),
    ],
    S.APPROVED: [("record_payment", (C.CAN_RECORD_PAYMENT,))],
    S.PAID: [("issue", (C.CAN_ISSUE,))],
    S.ISSUED: [
        ("release", (C.CAN_RELEASE,)),
        ("renew", (C.CAN_CREATE_APPLICATION,)),
    ],
    S.REJECTED: [],
    S.RELEASED: [("renew", (C.CAN_CREATE_APPLICATION,))],
}


def _now():
    return datetime.now(timezone.utc)


class PermitDocumentGenerator(Protocol):
    def generate(self, application: Application) -> str:
        ...


class ReferenceDocumentGenerator:
    """
    Default generator: no rendering, only a stable document reference.
    """

    def generate(self, application: Application) -> str:
        return f"PERMIT-{application.application_number or application.id}"


Mutation = Callable[[Application, datetime], Tuple[str, Dict[str, Any]]]
FollowUp = Callable[[Application, datetime], None]


class LifecycleService:
    """
    Guarded status transitions.

    Order of checks: capability, then current state, then preconditions.
    Every transition runs under a row lock and a version check, so two
    concurrent attempts on the same application cannot both succeed.
    """

    def __init__(
        self,
        audit: Optional[AuditService] = None,
        notifications: Optional[NotificationService] = None,
        documents: Optional[PermitDocumentGenerator] = None,
    ):
        self.audit = audit or AuditService()
        self.notifications = notifications or NotificationService()
        self.documents = documents or ReferenceDocumentGenerator()

    # ─────────── pure helpers ───────────

    @staticmethod
    def can_transition(
        from_status: Union[str, ApplicationStatus],
        to_status: Union[str, ApplicationStatus],
    ) -> bool:
        return _can_transition(from_status, to_status)

    @staticmethod
    def available_actions(application: Application, principal: Principal) -> List[str]:
        actions = []
        for name, caps in _ACTIONS[as_status(application.status)]:
            if principal.has_any(*caps):
                actions.append(name)
        if application.status == S.PENDING.value and (
            principal.has(C.CAN_DELETE_ANY)
            or (principal.has(C.CAN_CREATE_APPLICATION) and str(application.creator_id) == principal.user_id)
        ):
            actions.append("delete")
        return actions

    # ─────────── core transition ───────────

    def _transition(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        principal: Principal,
        capability: Capability,
        target: ApplicationStatus,
        action: str,
        mutate: Optional[Mutation] = None,
        follow_up: Optional[FollowUp] = None,
        request_id: Optional[str] = None,
    ) -> Application:
        require_capability(principal, capability)

        with guarded_write(db, application_id=application_id):
            app = lock_application(db, application_id)
            source = app.status_enum
            if not _can_transition(source, target):
                raise InvalidTransitionError(app.id, app.status, target.value)

            now = _now()
            description, details = (
                mutate(app, now) if mutate else (f"Status changed to {target.value}", {})
            )
            app.status = target.value
            app.updated_at = now
            db.flush()

            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=action,
                description=description,
                application_id=app.id,
                details={"from": source.value, "to": target.value, **details},
                request_id=request_id,
            )
            if follow_up is not None:
                follow_up(app, now)

        logger.info(
            "application transition",
            extra={
                "application_id": str(app.id),
                "from_status": source.value,
                "to_status": app.status,
                "actor_id": principal.user_id,
            },
        )
        return app

    @staticmethod
    def _lock_fees(app: Application, now: datetime) -> None:
        for f in app.assessed_fees:
            if f.locked_at is None:
                f.locked_at = now

    def _notify_creator(self, db: Session, app: Application, event: str, message: str) -> None:
        self.notifications.notify(
            db,
            user_id=app.creator_id,
            event=event,
            message=message,
            link=f"/applications/{app.id}",
        )

    # ─────────── transitions ───────────

    def submit_for_approval(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> Application:
        def mutate(app: Application, now: datetime):
            if not app.assessed_fees:
                raise ConflictError(
                    "Application has no assessed fees to submit.",
                    code="NO_ASSESSED_FEES",
                    details={"entity": "Application", "id": str(app.id)},
                )
            return (
                f"Assessment of {app.application_number} submitted for approval",
                {"fees": len(app.assessed_fees)},
            )

        app = self._transition(
            db,
            application_id=application_id,
            principal=principal,
            capability=C.CAN_ASSESS,
            target=S.PENDING_APPROVAL,
            action=AuditAction.SUBMIT_ASSESSMENT,
            mutate=mutate,
            request_id=request_id,
        )
        self.notifications.notify_capability(
            db,
            capability=C.CAN_APPROVE,
            event="APPROVAL_REQUESTED",
            message=f"Application {app.application_number} is waiting for approval.",
            link=f"/applications/{app.id}",
            exclude_user_id=principal.actor_id,
        )
        return app

    def approve(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> Application:
        def mutate(app: Application, now: datetime):
            self._lock_fees(app, now)
            app.approver_id = principal.actor_id
            app.approved_at = now
            return f"Approved application {app.application_number}", {}

        def settle_zero_total(app: Application, now: datetime) -> None:
            # payments must be > 0, so a zero total settles here
            total = AssessmentService.total_assessed(app)
            if total > to_money(get_settings().payment_tolerance):
                return
            app.status = S.PAID.value
            app.paid_at = now
            db.flush()
            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=AuditAction.MARK_PAID,
                description=f"Application {app.application_number} has nothing to pay (total {total})",
                application_id=app.id,
                details={"from": S.APPROVED.value, "to": S.PAID.value, "total_paid": str(ZERO)},
                request_id=request_id,
            )

        app = self._transition(
            db,
            application_id=application_id,
            principal=principal,
            capability=C.CAN_APPROVE,
            target=S.APPROVED,
            action=AuditAction.APPROVE_APP,
            mutate=mutate,
            follow_up=settle_zero_total,
            request_id=request_id,
        )
        self._notify_creator(
            db, app, "APPLICATION_APPROVED", f"Application {app.application_number} has been approved."
        )
        if app.status == S.PAID.value:
            self.notifications.notify_capability(
                db,
                capability=C.CAN_ISSUE,
                event="READY_TO_ISSUE",
                message=f"Application {app.application_number} has nothing to pay and is ready for issuance.",
                link=f"/applications/{app.id}",
                exclude_user_id=principal.actor_id,
            )
        return app

    def reject(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        reason: Optional[str],
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> Application:
        require_capability(principal, C.CAN_APPROVE)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required.", details={"field": "reason"})

        def mutate(app: Application, now: datetime):
            self._lock_fees(app, now)
            app.approver_id = principal.actor_id
            app.rejected_at = now
            app.rejection_reason = reason
            return f"Rejected application {app.application_number}: {reason}", {"reason": reason}

        app = self._transition(
            db,
            application_id=application_id,
            principal=principal,
            capability=C.CAN_APPROVE,
            target=S.REJECTED,
            action=AuditAction.REJECT_APP,
            mutate=mutate,
            request_id=request_id,
        )
        self._notify_creator(
            db,
            app,
            "APPLICATION_REJECTED",
            f"Application {app.application_number} was rejected: {reason}",
        )
        return app

    def _validity(self, db: Session, app: Application) -> Optional[str]:
        ptype = db.get(PermitType, app.permit_type_id)
        if ptype is not None and ptype.validity_type == "custom":
            for p in app.parameters:
                if p.param_name.strip().lower() == VALIDITY_PARAMETER.lower() and p.param_value.strip():
                    return p.param_value.strip()
            raise ValidationError(
                f"Permit type '{app.permit_type_name}' needs a '{VALIDITY_PARAMETER}' parameter for its validity.",
                details={"field": "parameters", "parameter": VALIDITY_PARAMETER},
            )
        if ptype is not None and ptype.validity_date is not None:
            return ptype.validity_date.isoformat()
        return None

    def issue(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> Application:
        def mutate(app: Application, now: datetime):
            app.validity_date = self._validity(db, app)
            app.permit_document_ref = self.documents.generate(app)
            app.issued_by_id = principal.actor_id
            app.issued_at = now
            return (
                f"Issued permit {app.permit_document_ref}",
                {"permit_document_ref": app.permit_document_ref, "validity_date": app.validity_date},
            )

        app = self._transition(
            db,
            application_id=application_id,
            principal=principal,
            capability=C.CAN_ISSUE,
            target=S.ISSUED,
            action=AuditAction.ISSUE_PERMIT,
            mutate=mutate,
            request_id=request_id,
        )
        self._notify_creator(
            db, app, "PERMIT_ISSUED", f"Permit for application {app.application_number} has been issued."
        )
        return app

    def release(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        released_by: Optional[str],
        received_by: Optional[str],
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> Application:
        require_capability(principal, C.CAN_RELEASE)
        released_by = (released_by or "").strip()
        received_by = (received_by or "").strip()
        if not released_by:
            raise ValidationError("released_by is required.", details={"field": "released_by"})
        if not received_by:
            raise ValidationError("received_by is required.", details={"field": "received_by"})

        def mutate(app: Application, now: datetime):
            app.released_by = released_by
            app.received_by = received_by
            app.released_at = now
            return (
                f"Permit {app.permit_document_ref} released by {released_by} to {received_by}",
                {"released_by": released_by, "received_by": received_by},
            )

        return self._transition(
            db,
            application_id=application_id,
            principal=principal,
            capability=C.CAN_RELEASE,
            target=S.RELEASED,
            action=AuditAction.RELEASE_PERMIT,
            mutate=mutate,
            request_id=request_id,
        )
