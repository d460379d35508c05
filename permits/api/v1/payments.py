# permits/api/v1/payments.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from permits.api.v1._common import request_id
from permits.core.auth_deps import get_current_principal
from permits.core.deps_idempotency import require_idempotency_key
from permits.db.session import get_db
from permits.policies.rbac import Principal
from permits.schemas.payments import PaymentIn, PaymentOut, PaymentSummaryOut
from permits.services.applications_service import display_names
from permits.services.payment_service import PaymentService

router = APIRouter(prefix="/applications", tags=["payments"])


@router.post("/{application_id}/payments", status_code=201, response_model=PaymentOut)
def record_payment(
    application_id: uuid.UUID,
    payload: PaymentIn,
    request: Request,
    idem_key: str = Depends(require_idempotency_key),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Record one payment. Retrying with the same Idempotency-Key and body
    returns the original payment instead of posting a second one.
    """
    payment = PaymentService().record_payment(
        db,
        application_id=application_id,
        official_receipt_no=payload.official_receipt_no,
        payment_date=payload.payment_date,
        amount=payload.amount,
        address=payload.address,
        principal=principal,
        idempotency_key=idem_key,
        request_id=request_id(request),
    )
    names = display_names(db, [payment.recorded_by_id])
    return PaymentOut.from_payment(payment, names.get(payment.recorded_by_id))


@router.get("/{application_id}/payments", response_model=List[PaymentOut])
def list_payments(
    application_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return [PaymentOut.from_line(line) for line in PaymentService().list_payments(db, application_id=application_id)]


@router.get("/{application_id}/balance", response_model=PaymentSummaryOut)
def balance(
    application_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = PaymentService()
    svc.outstanding_balance(db, application_id=application_id, principal=principal, request_id=request_id(request))
    s = svc.summary(db, application_id=application_id)
    return PaymentSummaryOut(
        application_id=s.application_id,
        status=s.status,
        total_assessed=s.total_assessed,
        total_paid=s.total_paid,
        outstanding=s.outstanding,
        overpaid=s.overpaid,
        payment_count=s.payment_count,
    )
