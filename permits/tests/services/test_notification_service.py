import uuid

import pytest
from sqlalchemy.exc import OperationalError

from permits.models.notification import Notification
from permits.policies.rbac import Capability
from permits.services.notification_service import NotificationService, SessionRegistry


@pytest.fixture
def registry():
    return SessionRegistry()


def test_push_reaches_every_session_of_a_user(registry):
    got_a, got_b = [], []
    registry.register("u1", got_a.append)
    registry.register("u1", got_b.append)

    assert registry.push("u1", {"event": "X"}) == 2
    assert got_a == got_b == [{"event": "X"}]
    assert registry.push("u2", {"event": "X"}) == 0


def test_unregister_one_callback_keeps_the_others(registry):
    got = []
    cb = got.append
    registry.register("u1", cb)
    registry.register("u1", lambda p: None)

    registry.unregister("u1", cb)
    assert registry.is_connected("u1")
    registry.push("u1", {"event": "X"})
    assert got == []

    registry.unregister("u1")
    assert not registry.is_connected("u1")
    assert registry.connected_users() == []


def test_failing_callback_does_not_stop_delivery(registry):
    got = []

    def broken(payload):
        raise RuntimeError("socket closed")

    registry.register("u1", broken)
    registry.register("u1", got.append)

    assert registry.push("u1", {"event": "X"}) == 1
    assert got == [{"event": "X"}]


def test_notify_persists_and_pushes(db, seeded, registry):
    user_id = seeded.users["Viewer"]
    pushed = []
    registry.register(user_id, pushed.append)

    row = NotificationService(registry).notify(
        db, user_id=user_id, event="PING", message="hello", link="/applications/1"
    )

    assert row is not None
    assert db.get(Notification, row.id).is_read is False
    assert pushed[0]["event"] == "PING"
    assert pushed[0]["notification_id"] == str(row.id)
    assert pushed[0]["user_id"] == str(user_id)


def test_notify_failure_is_swallowed(db, seeded, registry, monkeypatch):
    pushed = []
    user_id = seeded.users["Viewer"]
    registry.register(user_id, pushed.append)

    def failing_commit():
        raise OperationalError("INSERT INTO notifications", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", failing_commit)
    assert NotificationService(registry).notify(db, user_id=user_id, event="PING", message="hello") is None
    assert pushed == []


def test_notify_capability_skips_the_actor(db, seeded, registry):
    svc = NotificationService(registry)
    sent = svc.notify_capability(
        db,
        capability=Capability.CAN_APPROVE,
        event="APPROVAL_REQUESTED",
        message="waiting",
        exclude_user_id=seeded.users["Admin"],
    )

    # Approver, plus SuperAdmin through bypass
    assert sent == 2
    assert [n.event for n in svc.unread(db, user_id=seeded.users["Approver"])] == ["APPROVAL_REQUESTED"]
    assert svc.unread(db, user_id=seeded.users["Admin"]) == []
    assert svc.unread(db, user_id=seeded.users["Viewer"]) == []


def test_unread_is_newest_first(db, seeded, registry):
    svc = NotificationService(registry)
    uid = seeded.users["Assessor"]
    svc.notify(db, user_id=uid, event="FIRST", message="1")
    svc.notify(db, user_id=uid, event="SECOND", message="2")

    assert [n.event for n in svc.unread(db, user_id=uid)] == ["SECOND", "FIRST"]
    assert svc.unread(db, user_id=uuid.uuid4()) == []
