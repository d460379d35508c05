from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from permits.core.config import get_settings
from permits.models.notification import Notification
from permits.models.user import User
from permits.policies.rbac import Capability, roles_with_capability

logger = logging.getLogger(__name__)

PushCallback = Callable[[Dict[str, Any]], None]


class SessionRegistry:
    """
    Process-wide map of connected users -> push callbacks.

    A user may hold several live connections (tabs, devices); each one
    registers its own callback and removes it on disconnect.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: Dict[str, List[PushCallback]] = {}

    def register(self, user_id: Any, callback: PushCallback) -> None:
        with self._lock:
            self._sessions.setdefault(str(user_id), []).append(callback)

    def unregister(self, user_id: Any, callback: Optional[PushCallback] = None) -> None:
        key = str(user_id)
        with self._lock:
            if callback is None:
                self._sessions.pop(key, None)
                return
            callbacks = self._sessions.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._sessions.pop(key, None)

    def is_connected(self, user_id: Any) -> bool:
        with self._lock:
            return str(user_id) in self._sessions

    def connected_users(self) -> List[str]:
        with self._lock:
            return sorted(self._sessions)

    def push(self, user_id: Any, payload: Dict[str, Any]) -> int:
        with self._lock:
            callbacks = list(self._sessions.get(str(user_id), []))

        delivered = 0
        for cb in callbacks:
            try:
                cb(payload)
                delivered += 1
            except Exception:
                logger.warning("notification push failed", exc_info=True, extra={"user_id": str(user_id)})
        return delivered


session_registry = SessionRegistry()


class NotificationService:
    """
    Best-effort notification sink: persist, then push to live sessions.
    Never raises; callers invoke it after their own commit.
    """

    def __init__(self, registry: Optional[SessionRegistry] = None):
        self.registry = registry or session_registry

    def notify(
        self,
        db: Session,
        *,
        user_id: uuid.UUID,
        event: str,
        message: str,
        link: Optional[str] = None,
    ) -> Optional[Notification]:
        row = Notification(user_id=user_id, event=event, message=message, link=link)
        try:
            db.add(row)
            db.commit()
            db.refresh(row)
        except SQLAlchemyError:
            db.rollback()
            logger.error("notification write failed", exc_info=True, extra={"user_id": str(user_id), "event": event})
            return None

        self.registry.push(
            user_id,
            {
                "notification_id": str(row.id),
                "user_id": str(user_id),
                "event": event,
                "message": message,
                "link": link,
                "is_read": False,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            },
        )
        return row

    def notify_capability(
        self,
        db: Session,
        *,
        capability: Capability,
        event: str,
        message: str,
        link: Optional[str] = None,
        exclude_user_id: Optional[uuid.UUID] = None,
    ) -> int:
        """
        Fan out to every active user whose role grants the capability.
        """
        roles = roles_with_capability(capability, get_settings().role_capabilities)
        if not roles:
            return 0
        try:
            user_ids = db.execute(
                select(User.id).where(User.role_name.in_(roles), User.is_active.is_(True))
            ).scalars().all()
        except SQLAlchemyError:
            db.rollback()
            logger.error("notification fan-out lookup failed", exc_info=True, extra={"event": event})
            return 0

        sent = 0
        for uid in user_ids:
            if exclude_user_id is not None and uid == exclude_user_id:
                continue
            if self.notify(db, user_id=uid, event=event, message=message, link=link) is not None:
                sent += 1
        return sent

    def unread(self, db: Session, *, user_id: uuid.UUID) -> List[Notification]:
        return list(
            db.execute(
                select(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
                .order_by(Notification.created_at.desc())
            ).scalars().all()
        )
