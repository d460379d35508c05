# permits/api/v1/applications.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from permits.api.v1._common import application_detail, request_id
from permits.core.auth_deps import get_current_principal
from permits.db.session import get_db
from permits.policies.rbac import Principal
from permits.schemas.applications import (
    ApplicationCreateIn,
    ApplicationDetailOut,
    AuditEntryOut,
    PermitTypeChangeIn,
)
from permits.services.applications_service import ApplicationService

router = APIRouter(prefix="/applications", tags=["applications"])


@router.post("", status_code=201, response_model=ApplicationDetailOut)
def create_application(
    payload: ApplicationCreateIn,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    app = ApplicationService().create(
        db,
        entity_id=payload.entity_id,
        permit_type=payload.permit_type,
        parameters=[p.model_dump() for p in payload.parameters],
        attribute=payload.attribute,
        principal=principal,
        request_id=request_id(request),
    )
    return application_detail(db, app.id, principal)


@router.get("/{application_id}", response_model=ApplicationDetailOut)
def get_application(
    application_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return application_detail(db, application_id, principal)


@router.delete("/{application_id}", status_code=204)
def delete_application(
    application_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ApplicationService().delete(
        db, application_id=application_id, principal=principal, request_id=request_id(request)
    )
    return Response(status_code=204)


@router.post("/{application_id}/renew", status_code=201, response_model=ApplicationDetailOut)
def renew_application(
    application_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    app = ApplicationService().renew(
        db, application_id=application_id, principal=principal, request_id=request_id(request)
    )
    return application_detail(db, app.id, principal)


@router.put("/{application_id}/permit-type", response_model=ApplicationDetailOut)
def change_permit_type(
    application_id: uuid.UUID,
    payload: PermitTypeChangeIn,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ApplicationService().change_permit_type(
        db,
        application_id=application_id,
        permit_type=payload.permit_type,
        principal=principal,
        request_id=request_id(request),
    )
    return application_detail(db, application_id, principal)


@router.get("/{application_id}/audit", response_model=List[AuditEntryOut])
def audit_trail(
    application_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    rows = ApplicationService().audit_trail(db, application_id=application_id)
    return [AuditEntryOut.model_validate(r) for r in rows]
