"""
Typed errors raised by the permit core.

Every error carries a machine-readable ``code``, a human message, structured
``details`` (entity type + id wherever one is known) and the HTTP status the
API layer renders it with.

    PermitError (base)
    |
    +-- ValidationError      422  malformed / missing input
    +-- AuthorizationError   403  capability or ownership check failed
    +-- NotFoundError        404  unknown id
    +-- ConflictError        409  state precondition violated, lost race
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PermitError(Exception):
    code: str = "PERMIT_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "retryable": self.retryable,
            }
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code='{self.code}', message='{self.message}')"


class ValidationError(PermitError):
    code = "VALIDATION_ERROR"
    status_code = 422


class AuthorizationError(PermitError):
    code = "AUTHORIZATION_FAILED"
    status_code = 403


class NotFoundError(PermitError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{entity} not found.",
            details={"entity": entity, "id": str(entity_id)},
        )
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(PermitError):
    code = "CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message, code=code, details=details)
        self.retryable = retryable


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"

    def __init__(self, application_id: Any, from_status: str, to_status: str):
        super().__init__(
            f"Invalid transition from '{from_status}' to '{to_status}'.",
            details={
                "entity": "Application",
                "id": str(application_id),
                "from": from_status,
                "to": to_status,
            },
        )
        self.from_status = from_status
        self.to_status = to_status


class ConcurrentModificationError(ConflictError):
    code = "CONCURRENT_MODIFICATION"

    def __init__(self, entity: str, entity_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{entity} was modified concurrently; re-fetch and retry.",
            details={"entity": entity, "id": str(entity_id)},
            retryable=True,
        )
