# permits/api/v1/lifecycle.py
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from permits.api.v1._common import application_detail, request_id
from permits.core.auth_deps import get_current_principal
from permits.db.session import get_db
from permits.policies.rbac import Principal
from permits.schemas.applications import ApplicationDetailOut, RejectIn, ReleaseIn
from permits.services.lifecycle_service import LifecycleService

router = APIRouter(prefix="/applications", tags=["lifecycle"])


@router.put("/{application_id}/submit", response_model=ApplicationDetailOut)
def submit_for_approval(
    application_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    LifecycleService().submit_for_approval(
        db, application_id=application_id, principal=principal, request_id=request_id(request)
    )
    return application_detail(db, application_id, principal)


@router.put("/{application_id}/approve", response_model=ApplicationDetailOut)
def approve(
    application_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    LifecycleService().approve(
        db, application_id=application_id, principal=principal, request_id=request_id(request)
    )
    return application_detail(db, application_id, principal)


@router.put("/{application_id}/reject", response_model=ApplicationDetailOut)
def reject(
    application_id: uuid.UUID,
    payload: RejectIn,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    LifecycleService().reject(
        db,
        application_id=application_id,
        reason=payload.reason,
        principal=principal,
        request_id=request_id(request),
    )
    return application_detail(db, application_id, principal)


@router.put("/{application_id}/issue", response_model=ApplicationDetailOut)
def issue(
    application_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    LifecycleService().issue(
        db, application_id=application_id, principal=principal, request_id=request_id(request)
    )
    return application_detail(db, application_id, principal)


@router.put("/{application_id}/release", response_model=ApplicationDetailOut)
def release(
    application_id: uuid.UUID,
    payload: ReleaseIn,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    LifecycleService().release(
        db,
        application_id=application_id,
        released_by=payload.released_by,
        received_by=payload.received_by,
        principal=principal,
        request_id=request_id(request),
    )
    return application_detail(db, application_id, principal)
