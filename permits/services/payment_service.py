from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from permits.core.config import get_settings
from permits.core.exceptions import ConflictError, InvalidTransitionError, ValidationError
from permits.core.money import ZERO, parse_money, to_money
from permits.core.status_graph import can_transition
from permits.core.statuses import ApplicationStatus
from permits.models.payment import Payment
from permits.policies.rbac import Capability, Principal, require_capability
from permits.services import totals
from permits.services.application_lock import guarded_write, lock_application
from permits.services.applications_service import ApplicationService, PaymentLine, display_names
from permits.services.audit_service import AuditAction, AuditService
from permits.services.idempotency_service import IdempotencyService
from permits.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

S = ApplicationStatus


def _now():
    return datetime.now(timezone.utc)


def parse_payment_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(
        f"payment_date must be a date (YYYY-MM-DD), got {value!r}.",
        details={"field": "payment_date"},
    )


@dataclass(frozen=True)
class PaymentSummary:
    application_id: uuid.UUID
    status: str
    total_assessed: Decimal
    total_paid: Decimal
    outstanding: Decimal
    overpaid: Decimal
    payment_count: int


class PaymentService:
    """
    Payment reconciliation. Payments are accepted only while Approved; the
    payment that brings the sum within tolerance of the assessed total moves
    the application to Paid in the same transaction.
    """

    def __init__(
        self,
        audit: Optional[AuditService] = None,
        notifications: Optional[NotificationService] = None,
        idempotency: Optional[IdempotencyService] = None,
        applications: Optional[ApplicationService] = None,
    ):
        self.audit = audit or AuditService()
        self.notifications = notifications or NotificationService()
        self.idempotency = idempotency or IdempotencyService()
        self.applications = applications or ApplicationService(audit=self.audit, notifications=self.notifications)

    def record_payment(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        official_receipt_no: Optional[str],
        payment_date: Any,
        amount: Any,
        principal: Principal,
        address: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Payment:
        require_capability(principal, Capability.CAN_RECORD_PAYMENT)

        value = parse_money(amount, field="amount")
        if value <= ZERO:
            raise ValidationError("Payment amount must be greater than zero.", details={"field": "amount", "value": str(value)})
        receipt = (official_receipt_no or "").strip()
        if not receipt:
            raise ValidationError("official_receipt_no is required.", details={"field": "official_receipt_no"})
        pdate = parse_payment_date(payment_date)
        address = (address or "").strip() or None

        settings = get_settings()
        tolerance = to_money(settings.payment_tolerance)

        became_paid = False
        with guarded_write(db, application_id=application_id):
            app = lock_application(db, application_id)

            req_hash = None
            if idempotency_key:
                existing, req_hash = self.idempotency.replay_or_none(
                    db,
                    application_id=app.id,
                    idem_key=idempotency_key,
                    request_payload={
                        "official_receipt_no": receipt,
                        "payment_date": pdate,
                        "amount": value,
                        "address": address,
                    },
                )
                if existing is not None:
                    logger.info(
                        "payment replayed",
                        extra={"application_id": str(app.id), "payment_id": str(existing.id)},
                    )
                    return existing

            if app.status_enum != S.APPROVED:
                raise ConflictError(
                    f"Payments are accepted only while Approved (status '{app.status}').",
                    code="ALREADY_PAID" if app.status_enum == S.PAID else "PAYMENT_NOT_ALLOWED",
                    details={"entity": "Application", "id": str(app.id), "status": app.status},
                )

            duplicate = db.execute(
                select(Payment.id).where(
                    Payment.application_id == app.id,
                    Payment.official_receipt_no == receipt,
                )
            ).first()
            if duplicate is not None:
                raise ConflictError(
                    f"Receipt {receipt} is already recorded for this application.",
                    code="DUPLICATE_RECEIPT",
                    details={"entity": "Application", "id": str(app.id), "official_receipt_no": receipt},
                )

            total = totals.total_assessed(app.assessed_fees)
            paid = totals.total_paid(app.payments)
            remaining = totals.outstanding(total, paid)

            if not settings.allow_partial_payments and value < remaining - tolerance:
                raise ValidationError(
                    f"Partial payments are not accepted; outstanding balance is {remaining}.",
                    code="PARTIAL_PAYMENT_REFUSED",
                    details={"field": "amount", "outstanding": str(remaining)},
                )
            if paid + value > total + tolerance:
                raise ValidationError(
                    f"Payment of {value} exceeds the outstanding balance of {remaining}.",
                    code="OVERPAYMENT_REFUSED",
                    details={"field": "amount", "outstanding": str(remaining)},
                )

            payment = Payment(
                application_id=app.id,
                official_receipt_no=receipt,
                payment_date=pdate,
                amount=value,
                address=address,
                recorded_by_id=principal.actor_id,
                idempotency_key=idempotency_key,
                request_hash=req_hash,
            )
            try:
                with db.begin_nested():
                    db.add(payment)
            except IntegrityError:
                raise ConflictError(
                    f"Receipt {receipt} is already recorded for this application.",
                    code="DUPLICATE_RECEIPT",
                    details={"entity": "Application", "id": str(app.id), "official_receipt_no": receipt},
                )

            now = _now()
            # version bump: concurrent payments on one application serialize here
            app.updated_at = now
            db.flush()

            new_paid = paid + value
            self.audit.record(
                db,
                actor_id=principal.actor_id,
                action=AuditAction.RECORD_PAYMENT,
                description=f"Recorded payment OR#{receipt} of {value}",
                application_id=app.id,
                details={
                    "payment_id": str(payment.id),
                    "official_receipt_no": receipt,
                    "amount": str(value),
                    "payment_date": pdate.isoformat(),
                    "total_paid": str(new_paid),
                    "total_assessed": str(total),
                },
                request_id=request_id,
            )

            if new_paid >= total - tolerance:
                if not can_transition(app.status_enum, S.PAID):
                    raise InvalidTransitionError(app.id, app.status, S.PAID.value)
                app.status = S.PAID.value
                app.paid_at = now
                db.flush()
                became_paid = True
                self.audit.record(
                    db,
                    actor_id=principal.actor_id,
                    action=AuditAction.MARK_PAID,
                    description=f"Application {app.application_number} fully paid ({new_paid} of {total})",
                    application_id=app.id,
                    details={"from": S.APPROVED.value, "to": S.PAID.value, "total_paid": str(new_paid)},
                    request_id=request_id,
                )

        logger.info(
            "payment recorded",
            extra={
                "application_id": str(application_id),
                "payment_id": str(payment.id),
                "actor_id": principal.user_id,
                "to_status": S.PAID.value if became_paid else S.APPROVED.value,
            },
        )
        if became_paid:
            self.notifications.notify(
                db,
                user_id=app.creator_id,
                event="APPLICATION_PAID",
                message=f"Application {app.application_number} is fully paid.",
                link=f"/applications/{app.id}",
            )
            self.notifications.notify_capability(
                db,
                capability=Capability.CAN_ISSUE,
                event="READY_TO_ISSUE",
                message=f"Application {app.application_number} is paid and ready for issuance.",
                link=f"/applications/{app.id}",
                exclude_user_id=principal.actor_id,
            )
        return payment

    def list_payments(self, db: Session, *, application_id: uuid.UUID) -> List[PaymentLine]:
        self.applications.get_application(db, application_id=application_id)
        rows = db.execute(
            select(Payment)
            .where(Payment.application_id == application_id)
            .order_by(Payment.payment_date.asc(), Payment.created_at.asc())
        ).scalars().all()
        names = display_names(db, [p.recorded_by_id for p in rows])
        return [PaymentLine(payment=p, recorded_by_name=names.get(p.recorded_by_id)) for p in rows]

    def summary(self, db: Session, *, application_id: uuid.UUID) -> PaymentSummary:
        app = self.applications.get_application(db, application_id=application_id)
        total = totals.total_assessed(app.assessed_fees)
        paid = totals.total_paid(app.payments)
        return PaymentSummary(
            application_id=app.id,
            status=app.status,
            total_assessed=total,
            total_paid=paid,
            outstanding=totals.outstanding(total, paid),
            overpaid=totals.overpaid(total, paid),
            payment_count=len(app.payments),
        )

    def outstanding_balance(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        principal: Optional[Principal] = None,
        request_id: Optional[str] = None,
    ) -> Decimal:
        """
        max(total - paid, 0). An overpaid application gets one
        OVERPAYMENT_FLAGGED audit entry the first time it is seen.
        """
        s = self.summary(db, application_id=application_id)
        if s.overpaid > ZERO:
            self._flag_overpayment(db, summary=s, principal=principal, request_id=request_id)
        return s.outstanding

    def _flag_overpayment(
        self,
        db: Session,
        *,
        summary: PaymentSummary,
        principal: Optional[Principal],
        request_id: Optional[str],
    ) -> None:
        with guarded_write(db, application_id=summary.application_id):
            lock_application(db, summary.application_id)
            if self.audit.count(
                db, application_id=summary.application_id, action=AuditAction.OVERPAYMENT_FLAGGED
            ):
                return
            self.audit.record(
                db,
                actor_id=principal.actor_id if principal else None,
                action=AuditAction.OVERPAYMENT_FLAGGED,
                description=f"Payments exceed the assessed total by {summary.overpaid}",
                application_id=summary.application_id,
                details={
                    "total_assessed": str(summary.total_assessed),
                    "total_paid": str(summary.total_paid),
                    "overpaid": str(summary.overpaid),
                },
                request_id=request_id,
            )
        logger.warning(
            "overpayment flagged",
            extra={"application_id": str(summary.application_id), "overpaid": str(summary.overpaid)},
        )
