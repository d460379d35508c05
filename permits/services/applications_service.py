from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from permits.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from permits.core.statuses import ApplicationStatus
from permits.models.application import Application, ApplicationParameter
from permits.models.assessed_fee import AssessedFee
from permits.models.audit_log import AuditLogRecord
from permits.models.entity import Entity
from permits.models.payment import Payment
from permits.models.user import User
from permits.policies.rbac import Capability, Principal, require_capability
from permits.services.application_lock import guarded_write, lock_application
from permits.services.audit_service import AuditAction, AuditService
from permits.services.notification_service import NotificationService
from permits.services.permit_rules_service import PermitRulesService
from permits.services import totals

logger = logging.getLogger(__name__)

S = ApplicationStatus

# statuses a renewal may start from: a permit actually exists
RENEWABLE_STATUSES = frozenset({S.ISSUED, S.RELEASED})


def _now():
    return datetime.now(timezone.utc)


def normalize_parameters(parameters: Optional[Iterable[Any]]) -> List[Tuple[str, str]]:
    """
    Accepts mappings ({"param_name", "param_value"}), objects with those
    attributes, or (name, value) pairs. Names must be non-empty; values may be
    empty. Order is preserved and duplicates are kept.
    """
    out: List[Tuple[str, str]] = []
    for idx, p in enumerate(parameters or []):
        if isinstance(p, Mapping):
            name, value = p.get("param_name"), p.get("param_value")
        elif isinstance(p, (tuple, list)) and len(p) == 2:
            name, value = p
        else:
            name, value = getattr(p, "param_name", None), getattr(p, "param_value", None)

        name = (str(name) if name is not None else "").strip()
        if not name:
            raise ValidationError(
                "Parameter name must not be empty.",
                details={"field": "parameters", "index": idx},
            )
        out.append((name, "" if value is None else str(value)))
    return out


def display_names(db: Session, ids: Iterable[Optional[uuid.UUID]]) -> Dict[uuid.UUID, str]:
    wanted = {i for i in ids if i is not None}
    if not wanted:
        return {}
    rows = db.execute(select(User.id, User.full_name).where(User.id.in_(wanted))).all()
    return {r[0]: r[1] for r in rows}


@dataclass
class PaymentLine:
    payment: Payment
    recorded_by_name: Optional[str]


@dataclass
class ApplicationAggregate:
    application: Application
    entity_name: Optional[str]
    parameters: List[ApplicationParameter]
    assessed_fees: List[AssessedFee]
    payments: List[PaymentLine]
    total_assessed: Decimal
    total_paid: Decimal
    outstanding: Decimal
    names: Dict[str, Optional[str]] = field(default_factory=dict)


class ApplicationService:
    """
    Application aggregate: create, read, guarded delete, renewal and permit
    type change. Status moves past Pending belong to the assessment,
    lifecycle and payment services.
    """

    def __init__(
        self,
        audit: Optional[AuditService] = None,
        notifications: Optional[NotificationService] = None,
        rules: Optional[PermitRulesService] = None,
    ):
        self.audit = audit or AuditService()
        self.notifications = notifications or NotificationService()
        self.rules = rules or PermitRulesService()

    # ─────────── create ───────────

    def create(
        self,
        db: Session,
        *,
        entity_id: uuid.UUID,
        permit_type: Union[uuid.UUID, str],
        parameters: Optional[Iterable[Any]],
        principal: Principal,
        attribute: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Application:
        require_capability(principal, Capability.CAN_CREATE_APPLICATION)

        params = normalize_parameters(parameters)
        entity = db.get(Entity, entity_id)
        if entity is None:
            raise ValidationError(f"Unknown entity: {entity_id}", details={"field": "entity_id"})
        ptype = self.rules.get_permit_type(db, permit_type=permit_type)

        app = Application(
            id=uuid.uuid4(),
            entity_id=entity.id,
            permit_type_id=ptype.id,
            permit_type_name=ptype.name,
            attribute=(attribute or "").strip() or None,
            status=S.PENDING.value,
            creator_id=principal.actor_id,
        )
        for pos, (name, value) in enumerate(params):
            app.parameters.append(ApplicationParameter(position=pos, param_name=name, param_value=value))

        with guarded_write(db, application_id=app.id):
            db.add(app)
            db.flush()
            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=AuditAction.CREATE_APP,
                description=f"Created application for {entity.entity_name} ({ptype.name})",
                application_id=app.id,
                details={"entity_id": str(entity.id), "permit_type": ptype.name, "parameters": len(params)},
                request_id=request_id,
            )

        logger.info(
            "application created",
            extra={"application_id": str(app.id), "actor_id": principal.user_id, "to_status": app.status},
        )

        self.notifications.notify_capability(
            db,
            capability=Capability.CAN_ASSESS,
            event="APPLICATION_CREATED",
            message=f"New {ptype.name} application for {entity.entity_name} awaits assessment.",
            link=f"/applications/{app.id}",
            exclude_user_id=principal.actor_id,
        )
        return app

    # ─────────── read ───────────

    def get_application(self, db: Session, *, application_id: uuid.UUID) -> Application:
        app = db.execute(
            select(Application)
            .where(Application.id == application_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if app is None:
            raise NotFoundError("Application", application_id)
        return app

    def get(self, db: Session, *, application_id: uuid.UUID) -> ApplicationAggregate:
        app = self.get_application(db, application_id=application_id)

        fees = list(app.assessed_fees)
        payments = list(app.payments)
        names = display_names(
            db,
            [app.creator_id, app.assessor_id, app.approver_id, app.issued_by_id]
            + [p.recorded_by_id for p in payments],
        )
        entity = db.get(Entity, app.entity_id)

        total = totals.total_assessed(fees)
        paid = totals.total_paid(payments)
        return ApplicationAggregate(
            application=app,
            entity_name=entity.entity_name if entity else None,
            parameters=list(app.parameters),
            assessed_fees=fees,
            payments=[PaymentLine(payment=p, recorded_by_name=names.get(p.recorded_by_id)) for p in payments],
            total_assessed=total,
            total_paid=paid,
            outstanding=totals.outstanding(total, paid),
            names={
                "creator": names.get(app.creator_id),
                "assessor": names.get(app.assessor_id) if app.assessor_id else None,
                "approver": names.get(app.approver_id) if app.approver_id else None,
                "issued_by": names.get(app.issued_by_id) if app.issued_by_id else None,
            },
        )

    def audit_trail(self, db: Session, *, application_id: uuid.UUID) -> List[AuditLogRecord]:
        self.get_application(db, application_id=application_id)
        return self.audit.trail(db, application_id=application_id)

    # ─────────── delete ───────────

    def delete(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> None:
        """
        Only a Pending application without payments may be deleted, by a
        CAN_DELETE_ANY holder or by its own creator. The state rule binds
        superusers too.
        """
        with guarded_write(db, application_id=application_id):
            app = lock_application(db, application_id)

            is_owner = app.creator_id == principal.actor_id
            if not (
                principal.has(Capability.CAN_DELETE_ANY)
                or (principal.has(Capability.CAN_CREATE_APPLICATION) and is_owner)
            ):
                raise AuthorizationError(
                    "Only the creator or an administrator may delete this application.",
                    details={"entity": "Application", "id": str(application_id)},
                )

            if app.status_enum != S.PENDING:
                raise ConflictError(
                    f"Application in status '{app.status}' cannot be deleted.",
                    code="DELETE_NOT_ALLOWED",
                    details={"entity": "Application", "id": str(application_id), "status": app.status},
                )
            has_payments = db.execute(
                select(Payment.id).where(Payment.application_id == application_id).limit(1)
            ).first()
            if has_payments is not None:
                raise ConflictError(
                    "Application with recorded payments cannot be deleted.",
                    code="DELETE_NOT_ALLOWED",
                    details={"entity": "Application", "id": str(application_id)},
                )

            number = app.application_number
            # history survives the application; only the link is cut
            db.execute(
                update(AuditLogRecord)
                .where(AuditLogRecord.application_id == application_id)
                .values(application_id=None)
                .execution_options(synchronize_session=False)
            )
            db.delete(app)
            db.flush()

            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=AuditAction.DELETE_APPLICATION,
                description=f"Deleted application {number or application_id}",
                application_id=None,
                details={"application_id": str(application_id), "application_number": number},
                request_id=request_id,
            )

        logger.info("application deleted", extra={"application_id": str(application_id), "actor_id": principal.user_id})

    # ─────────── renew ───────────

    def renew(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> Application:
        require_capability(principal, Capability.CAN_CREATE_APPLICATION)

        source = self.get_application(db, application_id=application_id)
        if not (
            source.creator_id == principal.actor_id
            or principal.has_any(Capability.CAN_APPROVE, Capability.CAN_DELETE_ANY)
        ):
            raise AuthorizationError(
                "Only the creator or an administrator may renew this application.",
                details={"entity": "Application", "id": str(application_id)},
            )
        if source.status_enum not in RENEWABLE_STATUSES:
            raise ConflictError(
                f"Only issued or released permits can be renewed (status '{source.status}').",
                code="RENEW_NOT_ALLOWED",
                details={"entity": "Application", "id": str(application_id), "status": source.status},
            )

        ptype = self.rules.get_permit_type(db, permit_type=source.permit_type_id)
        app = Application(
            id=uuid.uuid4(),
            entity_id=source.entity_id,
            permit_type_id=ptype.id,
            permit_type_name=ptype.name,
            attribute=source.attribute,
            status=S.PENDING.value,
            creator_id=principal.actor_id,
            renewed_from_id=source.id,
        )
        for pos, p in enumerate(source.parameters):
            app.parameters.append(ApplicationParameter(position=pos, param_name=p.param_name, param_value=p.param_value))

        with guarded_write(db, application_id=app.id):
            db.add(app)
            db.flush()
            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=AuditAction.RENEW_APP,
                description=f"Renewed from application {source.application_number or source.id}",
                application_id=app.id,
                details={"renewed_from_id": str(source.id), "renewed_from_number": source.application_number},
                request_id=request_id,
            )

        logger.info(
            "application renewed",
            extra={"application_id": str(app.id), "renewed_from_id": str(source.id), "actor_id": principal.user_id},
        )
        return app

    # ─────────── permit type ───────────

    def change_permit_type(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        permit_type: Union[uuid.UUID, str],
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> Application:
        require_capability(principal, Capability.CAN_CREATE_APPLICATION, Capability.CAN_ASSESS)

        with guarded_write(db, application_id=application_id):
            app = lock_application(db, application_id)

            if any(f.is_locked for f in app.assessed_fees):
                raise ConflictError(
                    "Permit type cannot change once fees are locked.",
                    code="FEES_LOCKED",
                    details={"entity": "Application", "id": str(application_id)},
                )
            if app.status_enum != S.PENDING:
                raise ConflictError(
                    f"Permit type can only change while Pending (status '{app.status}').",
                    code="PERMIT_TYPE_LOCKED",
                    details={"entity": "Application", "id": str(application_id), "status": app.status},
                )

            ptype = self.rules.get_permit_type(db, permit_type=permit_type)
            old_name = app.permit_type_name
            app.permit_type_id = ptype.id
            app.permit_type_name = ptype.name
            app.updated_at = _now()
            db.flush()

            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=AuditAction.CHANGE_PERMIT_TYPE,
                description=f"Permit type changed from {old_name} to {ptype.name}",
                application_id=app.id,
                details={"from": old_name, "to": ptype.name},
                request_id=request_id,
            )
        return app
