#permits/core/auth_deps.py
from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from permits.core.config import get_settings
from permits.core.security import decode_token
from permits.policies.rbac import Principal, build_principal

bearer = HTTPBearer(auto_error=True)


def get_current_principal(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> Principal:
    """
    Canonical authentication dependency.

    Guarantees:
    - JWT is valid
    - sub (user id) and roles are present
    - roles are resolved to capabilities through Settings.role_capabilities
    """

    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")

    user_id = payload.get("sub")
    roles = payload.get("roles")
    display_name = payload.get("display_name") or "Unknown"

    if not user_id or roles is None:
        raise HTTPException(status_code=401, detail="Token missing required claims.")

    try:
        uuid.UUID(str(user_id))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid subject claim in token.")

    if isinstance(roles, str):
        roles = [roles]
    if not isinstance(roles, list):
        raise HTTPException(status_code=401, detail="Invalid roles claim in token.")

    principal = build_principal(
        user_id=str(user_id),
        roles=[str(r) for r in roles],
        display_name=str(display_name),
        role_capabilities=get_settings().role_capabilities,
    )

    # Make principal available to downstream middleware / handlers
    request.state.principal = principal

    return principal
