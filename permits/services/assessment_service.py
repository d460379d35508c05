from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from permits.core.exceptions import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from permits.core.money import ZERO, parse_money
from permits.core.statuses import FEE_EDITABLE_STATUSES, ApplicationStatus
from permits.models.application import Application, ApplicationParameter
from permits.models.assessed_fee import AssessedFee
from permits.policies.rbac import Capability, Principal, require_capability
from permits.services import totals
from permits.services.application_lock import guarded_write, lock_application
from permits.services.applications_service import normalize_parameters
from permits.services.audit_service import AuditAction, AuditService
from permits.services.fee_catalog_service import FeeCatalogService
from permits.services.fee_formula import evaluate_formula
from permits.services.notification_service import NotificationService
from permits.services.permit_rules_service import PermitRulesService
from permits.services.sequence_service import SequenceService

logger = logging.getLogger(__name__)

S = ApplicationStatus

ASSESSABLE_STATUSES = frozenset({S.PENDING, S.ASSESSED})
PARAMETER_EDITABLE_STATUSES = frozenset({S.PENDING, S.ASSESSED})


def _now():
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ComputedFee:
    fee_id: uuid.UUID
    fee_name: str
    category_name: str
    amount: Decimal
    formula: Optional[Dict[str, Any]]


class AssessmentService:
    """
    Computes assessed fees from permit type rules and the fee catalog.

    Amount precedence per rule: formula (over the application parameters),
    then the rule's fixed amount, then the catalog default.
    """

    def __init__(
        self,
        audit: Optional[AuditService] = None,
        notifications: Optional[NotificationService] = None,
        rules: Optional[PermitRulesService] = None,
        catalog: Optional[FeeCatalogService] = None,
        sequence: Optional[SequenceService] = None,
    ):
        self.audit = audit or AuditService()
        self.notifications = notifications or NotificationService()
        self.rules = rules or PermitRulesService()
        self.catalog = catalog or FeeCatalogService()
        self.sequence = sequence or SequenceService()

    @staticmethod
    def total_assessed(application: Application) -> Decimal:
        return totals.total_assessed(application.assessed_fees)

    def compute_fees(self, db: Session, *, application: Application) -> List[ComputedFee]:
        resolved = self.rules.resolve_rules(
            db, permit_type_id=application.permit_type_id, attribute=application.attribute
        )
        if not resolved:
            raise ValidationError(
                f"No assessment rules configured for permit type '{application.permit_type_name}'.",
                code="NO_ASSESSMENT_RULES",
                details={"permit_type_id": str(application.permit_type_id), "attribute": application.attribute},
            )

        params = [(p.param_name, p.param_value) for p in application.parameters]
        out: List[ComputedFee] = []
        for rule in resolved:
            try:
                fee = self.catalog.get_fee(db, fee_id=rule.fee_id)
            except NotFoundError:
                raise ValidationError(
                    f"Rule '{rule.rule_name}' references a fee that no longer exists.",
                    details={"fee_id": str(rule.fee_id)},
                )

            if rule.formula:
                amount = evaluate_formula(rule.formula, params)
            elif rule.amount is not None:
                amount = rule.amount
            else:
                amount = fee.default_amount

            out.append(
                ComputedFee(
                    fee_id=fee.fee_id,
                    fee_name=fee.fee_name,
                    category_name=fee.category_name,
                    amount=amount,
                    formula=rule.formula,
                )
            )
        return out

    # ─────────── assess / re-assess ───────────

    def assess(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> Application:
        require_capability(principal, Capability.CAN_ASSESS)

        with guarded_write(db, application_id=application_id):
            app = lock_application(db, application_id)
            current = app.status_enum
            if current not in ASSESSABLE_STATUSES:
                raise InvalidTransitionError(app.id, app.status, S.ASSESSED.value)

            computed = self.compute_fees(db, application=app)
            reassess = current == S.ASSESSED or bool(app.assessed_fees)

            # replace the whole set
            app.assessed_fees.clear()
            db.flush()

            now = _now()
            for pos, c in enumerate(computed):
                app.assessed_fees.append(
                    AssessedFee(
                        fee_id=c.fee_id,
                        fee_name=c.fee_name,
                        category_name=c.category_name,
                        assessed_amount=c.amount,
                        position=pos,
                        formula_json=c.formula,
                        is_adhoc=False,
                        assessed_by_id=principal.actor_id,
                        created_at=now,
                        updated_at=now,
                    )
                )

            app.assessor_id = principal.actor_id
            app.assessed_at = now
            app.updated_at = now
            app.status = S.ASSESSED.value
            if app.application_number is None:
                app.application_number = self.sequence.next_application_number(db)
            db.flush()

            total = totals.total_assessed(app.assessed_fees)
            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=AuditAction.REASSESS_APP if reassess else AuditAction.ASSESS_APP,
                description=(
                    f"{'Re-assessed' if reassess else 'Assessed'} application {app.application_number}: "
                    f"{len(computed)} fee(s), total {total}"
                ),
                application_id=app.id,
                details={
                    "application_number": app.application_number,
                    "fees": [{"fee_name": c.fee_name, "amount": str(c.amount)} for c in computed],
                    "total": str(total),
                },
                request_id=request_id,
            )

        logger.info(
            "application assessed",
            extra={
                "application_id": str(app.id),
                "from_status": current.value,
                "to_status": app.status,
                "actor_id": principal.user_id,
            },
        )
        if not reassess:
            self.notifications.notify(
                db,
                user_id=app.creator_id,
                event="APPLICATION_ASSESSED",
                message=f"Application {app.application_number} has been assessed.",
                link=f"/applications/{app.id}",
            )
        return app

    # ─────────── single line edits ───────────

    def update_fee_amount(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        assessed_fee_id: uuid.UUID,
        new_amount: Any,
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> AssessedFee:
        require_capability(principal, Capability.CAN_ASSESS, Capability.CAN_APPROVE)

        amount = parse_money(new_amount, field="amount")
        if amount < ZERO:
            raise ValidationError("Fee amount must not be negative.", details={"field": "amount", "value": str(amount)})

        with guarded_write(db, application_id=application_id):
            app = lock_application(db, application_id)
            if app.status_enum not in FEE_EDITABLE_STATUSES:
                raise ConflictError(
                    f"Fees cannot be edited while the application is '{app.status}'.",
                    code="FEES_LOCKED",
                    details={"entity": "Application", "id": str(application_id), "status": app.status},
                )

            fee = next((f for f in app.assessed_fees if f.id == assessed_fee_id), None)
            if fee is None:
                raise NotFoundError("AssessedFee", assessed_fee_id)
            if fee.is_locked:
                raise ConflictError(
                    "This fee is locked.",
                    code="FEES_LOCKED",
                    details={"entity": "AssessedFee", "id": str(assessed_fee_id)},
                )

            old = fee.assessed_amount
            now = _now()
            fee.assessed_amount = amount
            fee.updated_at = now
            # touch the parent so the version check covers this edit
            app.updated_at = now
            db.flush()

            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=AuditAction.REASSESS_FEE,
                description=f"Fee '{fee.fee_name}' changed from {old} to {amount}",
                application_id=app.id,
                details={"assessed_fee_id": str(fee.id), "old_amount": str(old), "new_amount": str(amount)},
                request_id=request_id,
            )
        return fee

    def add_adhoc_fee(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        fee_name: Optional[str],
        amount: Any,
        principal: Principal,
        category_name: Optional[str] = None,
        fee_id: Optional[uuid.UUID] = None,
        request_id: Optional[str] = None,
    ) -> AssessedFee:
        require_capability(principal, Capability.CAN_ASSESS)

        value = parse_money(amount, field="amount")
        if value < ZERO:
            raise ValidationError("Fee amount must not be negative.", details={"field": "amount", "value": str(value)})

        if fee_id is not None:
            definition = self.catalog.get_fee(db, fee_id=fee_id)
            fee_name = fee_name or definition.fee_name
            category_name = category_name or definition.category_name
        fee_name = (fee_name or "").strip()
        if not fee_name:
            raise ValidationError("fee_name is required.", details={"field": "fee_name"})

        with guarded_write(db, application_id=application_id):
            app = lock_application(db, application_id)
            if app.status_enum != S.ASSESSED:
                raise ConflictError(
                    f"Fees can only be added while Assessed (status '{app.status}').",
                    code="FEES_LOCKED",
                    details={"entity": "Application", "id": str(application_id), "status": app.status},
                )

            now = _now()
            row = AssessedFee(
                fee_id=fee_id,
                fee_name=fee_name,
                category_name=category_name,
                assessed_amount=value,
                position=max((f.position for f in app.assessed_fees), default=-1) + 1,
                is_adhoc=True,
                assessed_by_id=principal.actor_id,
                created_at=now,
                updated_at=now,
            )
            app.assessed_fees.append(row)
            app.updated_at = now
            db.flush()

            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=AuditAction.ADD_FEE,
                description=f"Added fee '{fee_name}' ({value})",
                application_id=app.id,
                details={"assessed_fee_id": str(row.id), "fee_name": fee_name, "amount": str(value)},
                request_id=request_id,
            )
        return row

    def remove_fee(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        assessed_fee_id: uuid.UUID,
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> Application:
        """Drop one fee line. Only while Assessed; submit refuses an empty fee set."""
        require_capability(principal, Capability.CAN_ASSESS)

        with guarded_write(db, application_id=application_id):
            app = lock_application(db, application_id)
            if app.status_enum != S.ASSESSED:
                raise ConflictError(
                    f"Fees can only be removed while Assessed (status '{app.status}').",
                    code="FEES_LOCKED",
                    details={"entity": "Application", "id": str(application_id), "status": app.status},
                )

            fee = next((f for f in app.assessed_fees if f.id == assessed_fee_id), None)
            if fee is None:
                raise NotFoundError("AssessedFee", assessed_fee_id)
            if fee.is_locked:
                raise ConflictError(
                    "This fee is locked.",
                    code="FEES_LOCKED",
                    details={"entity": "AssessedFee", "id": str(assessed_fee_id)},
                )

            fee_name, amount = fee.fee_name, fee.assessed_amount
            app.assessed_fees.remove(fee)
            app.updated_at = _now()
            db.flush()

            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=AuditAction.REMOVE_FEE,
                description=f"Removed fee '{fee_name}' ({amount})",
                application_id=app.id,
                details={
                    "assessed_fee_id": str(assessed_fee_id),
                    "fee_name": fee_name,
                    "amount": str(amount),
                    "remaining": len(app.assessed_fees),
                },
                request_id=request_id,
            )
        return app

    def append_parameters(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        parameters: Iterable[Any],
        principal: Principal,
        request_id: Optional[str] = None,
    ) -> List[ApplicationParameter]:
        require_capability(principal, Capability.CAN_ASSESS)

        params = normalize_parameters(parameters)
        if not params:
            raise ValidationError("At least one parameter is required.", details={"field": "parameters"})

        with guarded_write(db, application_id=application_id):
            app = lock_application(db, application_id)
            if app.status_enum not in PARAMETER_EDITABLE_STATUSES:
                raise ConflictError(
                    f"Parameters cannot be added while the application is '{app.status}'.",
                    code="PARAMETERS_LOCKED",
                    details={"entity": "Application", "id": str(application_id), "status": app.status},
                )

            start = max((p.position for p in app.parameters), default=-1) + 1
            added = []
            for offset, (name, value) in enumerate(params):
                row = ApplicationParameter(position=start + offset, param_name=name, param_value=value)
                app.parameters.append(row)
                added.append(row)
            app.updated_at = _now()
            db.flush()

            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=AuditAction.ADD_PARAMETERS,
                description=f"Added {len(added)} parameter(s)",
                application_id=app.id,
                details={"parameters": [n for n, _ in params]},
                request_id=request_id,
            )
        return added
