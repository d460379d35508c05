from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from permits.policies.rbac import Principal
from permits.schemas.applications import ApplicationDetailOut
from permits.services.applications_service import ApplicationService
from permits.services.lifecycle_service import LifecycleService


def request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def application_detail(db: Session, application_id: uuid.UUID, principal: Principal) -> ApplicationDetailOut:
    agg = ApplicationService().get(db, application_id=application_id)
    actions = LifecycleService.available_actions(agg.application, principal)
    return ApplicationDetailOut.from_aggregate(agg, actions)
