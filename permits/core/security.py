# permits/core/security.py
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Sequence, Union

from jose import jwt

from permits.core.config import get_settings


def create_access_token(subject: str, claims: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    exp_minutes = expires_minutes or settings.jwt_access_token_minutes
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_staff_token(
    user_id: Union[str, uuid.UUID],
    roles: Sequence[str],
    display_name: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Token with the sub/roles/display_name claims get_current_principal expects."""
    claims: Dict[str, Any] = {"roles": [str(r) for r in roles]}
    if display_name:
        claims["display_name"] = display_name
    return create_access_token(str(user_id), claims, expires_minutes)


def decode_token(token: str) -> Dict[str, Any]:
    """Verified claims. Raises jose.JWTError for a bad signature or an expired token."""
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
