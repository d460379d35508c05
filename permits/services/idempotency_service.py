from __future__ import annotations

import uuid
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from permits.core.exceptions import ConflictError
from permits.core.hashing import request_fingerprint
from permits.models.payment import Payment


class IdempotencyService:
    """
    Client-supplied keys for payment POSTs, scoped per application.

    The key and the payload hash live on the payment row itself, so the
    replay record commits atomically with the payment it describes.
    """

    def get_existing(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        idem_key: str,
    ) -> Optional[Payment]:
        return db.execute(
            select(Payment).where(
                Payment.application_id == application_id,
                Payment.idempotency_key == idem_key,
            )
        ).scalar_one_or_none()

    def replay_or_none(
        self,
        db: Session,
        *,
        application_id: uuid.UUID,
        idem_key: str,
        request_payload: Dict[str, Any],
    ) -> Tuple[Optional[Payment], str]:
        """
        Returns (existing_payment, request_hash).
        If a payment with this key exists:
          - same request_hash => replay it
          - different request_hash => conflict
        """
        req_hash = request_fingerprint(request_payload)
        existing = self.get_existing(db, application_id=application_id, idem_key=idem_key)
        if existing is None:
            return None, req_hash

        if existing.request_hash != req_hash:
            raise ConflictError(
                "Idempotency-Key reuse with different payload is not allowed.",
                code="IDEMPOTENCY_KEY_REUSED",
                details={"entity": "Application", "id": str(application_id), "idempotency_key": idem_key},
            )
        return existing, req_hash
