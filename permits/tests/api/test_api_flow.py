import json
import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from permits.core.config import get_settings
from permits.core.logging import configure_logging
from permits.core.security import create_access_token, create_staff_token
from permits.db.session import get_db
from permits.main import app


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth(seeded):
    def _headers(role, **extra):
        token = create_staff_token(seeded.users[role], [role], display_name=role)
        return {"Authorization": f"Bearer {token}", **extra}

    return _headers


def create(client, auth, seeded, **overrides):
    body = {
        "entity_id": str(seeded.entity_id),
        "permit_type": "Perya",
        "parameters": [{"param_name": "Location", "param_value": "Plaza"}],
        **overrides,
    }
    r = client.post("/api/v1/applications", json=body, headers=auth("Application Creator"))
    assert r.status_code == 201, r.text
    return r.json()


def test_health_echoes_request_id(client):
    r = client.get("/api/v1/health", headers={"X-Request-Id": "req-123"})
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "request_id": "req-123"}
    assert r.headers["X-Request-Id"] == "req-123"


def test_full_flow_over_http(client, auth, seeded):
    created = create(client, auth, seeded)
    app_id = created["application"]["id"]
    assert created["application"]["status"] == "Pending"
    assert created["creator_name"] == "Application Clerk"
    assert "delete" in created["available_actions"]

    r = client.put(f"/api/v1/applications/{app_id}/assess", headers=auth("Assessor"))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["application"]["status"] == "Assessed"
    assert body["total_assessed"] == "650.00"
    assert [f["assessed_amount"] for f in body["assessed_fees"]] == ["500.00", "150.00"]

    fee_id = body["assessed_fees"][1]["id"]
    r = client.put(f"/api/v1/applications/{app_id}/fees/{fee_id}", json={"amount": "200.00"}, headers=auth("Assessor"))
    assert r.status_code == 200, r.text
    assert r.json()["assessed_amount"] == "200.00"

    r = client.put(f"/api/v1/applications/{app_id}/submit", headers=auth("Assessor"))
    assert r.json()["application"]["status"] == "Pending Approval"

    r = client.put(f"/api/v1/applications/{app_id}/approve", headers=auth("Approver"))
    assert r.status_code == 200, r.text
    assert r.json()["approver_name"] == "Permit Approver"
    assert all(f["is_locked"] for f in r.json()["assessed_fees"])

    payment = {"official_receipt_no": "OR-9001", "payment_date": "2026-03-01", "amount": "700.00"}
    r = client.post(
        f"/api/v1/applications/{app_id}/payments", json=payment, headers=auth("Admin", **{"Idempotency-Key": "pay-1"})
    )
    assert r.status_code == 201, r.text
    first = r.json()
    assert first["amount"] == "700.00"
    assert first["recorded_by_name"] == "Office Admin"

    # retry of the same POST
    r = client.post(
        f"/api/v1/applications/{app_id}/payments", json=payment, headers=auth("Admin", **{"Idempotency-Key": "pay-1"})
    )
    assert r.status_code == 201
    assert r.json()["id"] == first["id"]

    r = client.get(f"/api/v1/applications/{app_id}/balance", headers=auth("Viewer"))
    assert r.json()["status"] == "Paid"
    assert r.json()["outstanding"] == "0.00"
    assert r.json()["payment_count"] == 1

    r = client.put(f"/api/v1/applications/{app_id}/issue", headers=auth("Approver"))
    assert r.status_code == 200, r.text
    assert r.json()["application"]["permit_document_ref"].startswith("PERMIT-")

    r = client.put(
        f"/api/v1/applications/{app_id}/release",
        json={"released_by": "Records Clerk", "received_by": "Juan Dela Cruz"},
        headers=auth("Admin"),
    )
    assert r.json()["application"]["status"] == "Released"

    r = client.get(f"/api/v1/applications/{app_id}/audit", headers=auth("Viewer"))
    actions = [row["action"] for row in r.json()]
    assert actions[0] == "RELEASE_PERMIT"
    assert actions[-1] == "CREATE_APP"
    assert "REASSESS_FEE" in actions


def test_domain_errors_use_error_envelope(client, auth, seeded):
    app_id = create(client, auth, seeded)["application"]["id"]

    r = client.put(f"/api/v1/applications/{app_id}/approve", headers=auth("Approver", **{"X-Request-Id": "r-1"}))
    assert r.status_code == 409
    err = r.json()["error"]
    assert err["code"] == "INVALID_TRANSITION"
    assert err["details"] == {"entity": "Application", "id": app_id, "from": "Pending", "to": "Approved"}
    assert err["retryable"] is False
    assert r.headers["X-Request-Id"] == "r-1"

    r = client.put(f"/api/v1/applications/{app_id}/assess", headers=auth("Viewer"))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "AUTHORIZATION_FAILED"

    r = client.get(f"/api/v1/applications/{uuid.uuid4()}", headers=auth("Viewer"))
    assert r.status_code == 404
    assert r.json()["error"]["details"]["entity"] == "Application"

    r = client.put(f"/api/v1/applications/{app_id}/permit-type", json={"permit_type": "Carnival"}, headers=auth("Admin"))
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_payment_requires_idempotency_key(client, auth, seeded):
    app_id = create(client, auth, seeded)["application"]["id"]
    r = client.post(
        f"/api/v1/applications/{app_id}/payments",
        json={"official_receipt_no": "OR-1", "payment_date": "2026-03-01", "amount": "10.00"},
        headers=auth("Admin"),
    )
    assert r.status_code == 400


def test_invalid_token_is_unauthorized(client, seeded):
    r = client.get(f"/api/v1/applications/{uuid.uuid4()}", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401

    token = create_access_token("not-a-uuid", {"roles": ["Admin"]})
    r = client.get(f"/api/v1/applications/{uuid.uuid4()}", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_missing_token_is_refused(client):
    r = client.get(f"/api/v1/applications/{uuid.uuid4()}")
    assert r.status_code in (401, 403)


def test_creator_deletes_pending_application(client, auth, seeded):
    app_id = create(client, auth, seeded)["application"]["id"]

    r = client.delete(f"/api/v1/applications/{app_id}", headers=auth("Assessor"))
    assert r.status_code == 403

    r = client.delete(f"/api/v1/applications/{app_id}", headers=auth("Application Creator"))
    assert r.status_code == 204
    assert client.get(f"/api/v1/applications/{app_id}", headers=auth("Viewer")).status_code == 404


def test_adhoc_fee_and_parameters(client, auth, seeded):
    app_id = create(client, auth, seeded)["application"]["id"]
    client.put(f"/api/v1/applications/{app_id}/assess", headers=auth("Assessor"))

    r = client.post(
        f"/api/v1/applications/{app_id}/parameters",
        json={"parameters": [{"param_name": "Rides", "param_value": "4"}]},
        headers=auth("Assessor"),
    )
    assert r.status_code == 200, r.text
    assert [p["param_name"] for p in r.json()["parameters"]] == ["Location", "Rides"]

    r = client.post(
        f"/api/v1/applications/{app_id}/fees",
        json={"fee_name": "Ride Inspection", "amount": "120.00", "category_name": "Engineering Fees"},
        headers=auth("Assessor"),
    )
    assert r.status_code == 201, r.text
    assert r.json()["is_adhoc"] is True

    detail = client.get(f"/api/v1/applications/{app_id}", headers=auth("Viewer")).json()
    assert detail["total_assessed"] == "770.00"


def test_remove_fee_over_http(client, auth, seeded):
    app_id = create(client, auth, seeded)["application"]["id"]
    fees = client.put(f"/api/v1/applications/{app_id}/assess", headers=auth("Assessor")).json()["assessed_fees"]
    assert "remove_fee" in client.get(f"/api/v1/applications/{app_id}", headers=auth("Assessor")).json()["available_actions"]

    r = client.delete(f"/api/v1/applications/{app_id}/fees/{fees[1]['id']}", headers=auth("Assessor"))
    assert r.status_code == 200, r.text
    assert r.json()["total_assessed"] == "500.00"
    assert [f["fee_name"] for f in r.json()["assessed_fees"]] == ["Mayor's Permit"]

    r = client.delete(f"/api/v1/applications/{app_id}/fees/{fees[1]['id']}", headers=auth("Assessor"))
    assert r.status_code == 404

    r = client.delete(f"/api/v1/applications/{app_id}/fees/{fees[0]['id']}", headers=auth("Viewer"))
    assert r.status_code == 403


def test_only_conflicts_log_at_warning(client, auth, seeded, caplog):
    app_id = create(client, auth, seeded)["application"]["id"]
    caplog.set_level(logging.INFO, logger="permits.main")

    client.put(f"/api/v1/applications/{app_id}/permit-type", json={"permit_type": "Carnival"}, headers=auth("Admin"))
    client.put(f"/api/v1/applications/{app_id}/approve", headers=auth("Approver"))

    levels = {
        r.status_code: r.levelno
        for r in caplog.records
        if r.name == "permits.main" and r.getMessage() == "request failed"
    }
    assert levels == {422: logging.INFO, 409: logging.WARNING}


def test_expired_token_is_unauthorized(client, seeded):
    token = create_staff_token(seeded.users["Admin"], ["Admin"], expires_minutes=-5)
    r = client.get(f"/api/v1/applications/{uuid.uuid4()}", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_logging_setup_is_repeatable():
    settings = get_settings()
    configure_logging(settings)
    configure_logging(settings)

    handlers = [h for h in logging.getLogger().handlers if getattr(h, "_permits_json", False)]
    assert len(handlers) == 1

    record = logging.LogRecord("permits.test", logging.INFO, __file__, 1, "hello", None, None)
    line = json.loads(handlers[0].format(record))
    assert line["message"] == "hello"
    assert line["level"] == "INFO"
    assert line["app"] == settings.app_name
    assert line["env"] == settings.environment
