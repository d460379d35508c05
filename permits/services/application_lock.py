from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from permits.core.config import get_settings
from permits.core.exceptions import ConcurrentModificationError, ConflictError, NotFoundError, PermitError
from permits.models.application import Application

logger = logging.getLogger(__name__)

_LOCK_MARKERS = ("lock timeout", "database is locked", "could not obtain lock", "deadlock detected")


def apply_lock_timeout(db: Session) -> None:
    # PostgreSQL only; SET LOCAL lasts until the transaction ends
    if db.get_bind().dialect.name != "postgresql":
        return
    ms = int(get_settings().lock_timeout_ms)
    db.execute(text(f"SET LOCAL lock_timeout = {ms}"))


def lock_application(db: Session, application_id: uuid.UUID) -> Application:
    """
    Row-lock the application and reload it, so guards run against the
    committed state and not a stale identity-map copy.
    """
    apply_lock_timeout(db)
    app = db.execute(
        select(Application)
        .where(Application.id == application_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if app is None:
        raise NotFoundError("Application", application_id)
    return app


def _is_lock_error(exc: OperationalError) -> bool:
    msg = str(getattr(exc, "orig", exc)).lower()
    return any(m in msg for m in _LOCK_MARKERS)


@contextmanager
def guarded_write(db: Session, *, application_id: uuid.UUID) -> Iterator[None]:
    """
    One business transaction: the body runs, then a single commit.

    Any failure rolls the whole transaction back. A lost optimistic race
    (version mismatch) or a lock wait that timed out becomes a retryable
    ConflictError; other storage errors propagate unchanged.
    """
    try:
        yield
        db.commit()
    except PermitError:
        db.rollback()
        raise
    except StaleDataError:
        db.rollback()
        logger.info("lost update race", extra={"application_id": str(application_id)})
        raise ConcurrentModificationError("Application", application_id)
    except OperationalError as exc:
        db.rollback()
        if not _is_lock_error(exc):
            raise
        logger.info("lock wait failed", extra={"application_id": str(application_id)})
        raise ConflictError(
            "Application is busy in another transaction; retry.",
            code="LOCK_TIMEOUT",
            details={"entity": "Application", "id": str(application_id)},
            retryable=True,
        )
    except Exception:
        db.rollback()
        raise
