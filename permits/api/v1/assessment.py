# permits/api/v1/assessment.py
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from permits.api.v1._common import application_detail, request_id
from permits.core.auth_deps import get_current_principal
from permits.db.session import get_db
from permits.policies.rbac import Principal
from permits.schemas.applications import (
    AdhocFeeIn,
    ApplicationDetailOut,
    AssessedFeeOut,
    FeeAmountIn,
    ParametersAppendIn,
)
from permits.services.assessment_service import AssessmentService

router = APIRouter(prefix="/applications", tags=["assessment"])


@router.put("/{application_id}/assess", response_model=ApplicationDetailOut)
def assess_application(
    application_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Assess a Pending application, or re-assess an Assessed one (replaces
    every fee line).
    """
    AssessmentService().assess(
        db, application_id=application_id, principal=principal, request_id=request_id(request)
    )
    return application_detail(db, application_id, principal)


@router.post("/{application_id}/parameters", response_model=ApplicationDetailOut)
def append_parameters(
    application_id: uuid.UUID,
    payload: ParametersAppendIn,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    AssessmentService().append_parameters(
        db,
        application_id=application_id,
        parameters=[p.model_dump() for p in payload.parameters],
        principal=principal,
        request_id=request_id(request),
    )
    return application_detail(db, application_id, principal)


@router.put("/{application_id}/fees/{fee_id}", response_model=AssessedFeeOut)
def update_fee_amount(
    application_id: uuid.UUID,
    fee_id: uuid.UUID,
    payload: FeeAmountIn,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    fee = AssessmentService().update_fee_amount(
        db,
        application_id=application_id,
        assessed_fee_id=fee_id,
        new_amount=payload.amount,
        principal=principal,
        request_id=request_id(request),
    )
    return AssessedFeeOut.model_validate(fee)


@router.post("/{application_id}/fees", status_code=201, response_model=AssessedFeeOut)
def add_adhoc_fee(
    application_id: uuid.UUID,
    payload: AdhocFeeIn,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    fee = AssessmentService().add_adhoc_fee(
        db,
        application_id=application_id,
        fee_name=payload.fee_name,
        amount=payload.amount,
        category_name=payload.category_name,
        fee_id=payload.fee_id,
        principal=principal,
        request_id=request_id(request),
    )
    return AssessedFeeOut.model_validate(fee)


@router.delete("/{application_id}/fees/{fee_id}", response_model=ApplicationDetailOut)
def remove_fee(
    application_id: uuid.UUID,
    fee_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    AssessmentService().remove_fee(
        db,
        application_id=application_id,
        assessed_fee_id=fee_id,
        principal=principal,
        request_id=request_id(request),
    )
    return application_detail(db, application_id, principal)
