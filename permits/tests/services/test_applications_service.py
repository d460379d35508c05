import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from permits.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from permits.models.application import Application
from permits.models.audit_log import AuditLogRecord
from permits.models.notification import Notification
from permits.models.payment import Payment
from permits.models.permit_type import PermitType
from permits.services.applications_service import ApplicationService, normalize_parameters


def test_create_starts_pending(db, perya_app, principals, seeded):
    app = ApplicationService().get_application(db, application_id=perya_app.id)

    assert app.status == "Pending"
    assert app.application_number is None
    assert app.permit_type_name == "Perya"
    assert app.creator_id == seeded.users["Application Creator"]
    assert [(p.param_name, p.param_value) for p in app.parameters] == [("Location", "Plaza")]

    trail = ApplicationService().audit_trail(db, application_id=app.id)
    assert [r.action for r in trail] == ["CREATE_APP"]


def test_create_notifies_assessors(db, perya_app, seeded):
    events = db.execute(
        select(Notification.event).where(Notification.user_id == seeded.users["Assessor"])
    ).scalars().all()
    assert events == ["APPLICATION_CREATED"]


def test_create_keeps_parameter_order_and_duplicates(db, seeded, principals):
    app = ApplicationService().create(
        db,
        entity_id=seeded.entity_id,
        permit_type=seeded.permit_types["Perya"],
        parameters=[("Booth", "A"), ("Booth", "B"), ("Note", "")],
        principal=principals["Admin"],
    )
    app = ApplicationService().get_application(db, application_id=app.id)
    assert [(p.param_name, p.param_value) for p in app.parameters] == [("Booth", "A"), ("Booth", "B"), ("Note", "")]


def test_create_rejects_unknown_entity(db, seeded, principals):
    with pytest.raises(ValidationError):
        ApplicationService().create(
            db, entity_id=uuid.uuid4(), permit_type="Perya", parameters=[], principal=principals["Admin"]
        )


@pytest.mark.parametrize("permit_type", ["Carnival", "", str(uuid.uuid4())])
def test_create_rejects_unknown_permit_type(db, seeded, principals, permit_type):
    with pytest.raises(ValidationError):
        ApplicationService().create(
            db, entity_id=seeded.entity_id, permit_type=permit_type, parameters=[], principal=principals["Admin"]
        )


def test_create_rejects_inactive_permit_type(db, seeded, principals):
    db.add(PermitType(name="Retired", validity_type="fixed", validity_date=date(2026, 12, 31), is_active=False))
    db.commit()
    with pytest.raises(ValidationError):
        ApplicationService().create(
            db, entity_id=seeded.entity_id, permit_type="Retired", parameters=[], principal=principals["Admin"]
        )


def test_create_rejects_blank_parameter_name(db, seeded, principals):
    with pytest.raises(ValidationError) as exc:
        ApplicationService().create(
            db,
            entity_id=seeded.entity_id,
            permit_type="Perya",
            parameters=[("Location", "Plaza"), ("  ", "x")],
            principal=principals["Admin"],
        )
    assert exc.value.details["index"] == 1
    assert db.execute(select(Application.id)).first() is None


def test_create_requires_capability(db, seeded, principals):
    with pytest.raises(AuthorizationError):
        ApplicationService().create(
            db, entity_id=seeded.entity_id, permit_type="Perya", parameters=[], principal=principals["Assessor"]
        )


def test_normalize_parameters_accepts_mixed_shapes():
    class P:
        param_name = "Area"
        param_value = 12

    assert normalize_parameters([{"param_name": "A", "param_value": None}, ("B", "1"), P()]) == [
        ("A", ""),
        ("B", "1"),
        ("Area", "12"),
    ]


def test_get_unknown_application(db, seeded):
    with pytest.raises(NotFoundError) as exc:
        ApplicationService().get(db, application_id=uuid.uuid4())
    assert exc.value.details["entity"] == "Application"


def test_get_returns_aggregate(db, perya_app, drive):
    drive(perya_app.id, "Paid")
    agg = ApplicationService().get(db, application_id=perya_app.id)

    assert agg.application.status == "Paid"
    assert agg.entity_name == "Sample Amusements Inc."
    assert [f.fee_name for f in agg.assessed_fees] == ["Mayor's Permit", "Sanitary Permit Fee"]
    assert (agg.total_assessed, agg.total_paid, agg.outstanding) == (
        Decimal("650.00"),
        Decimal("650.00"),
        Decimal("0.00"),
    )
    assert agg.names["creator"] == "Application Clerk"
    assert agg.names["assessor"] == "Office Admin"
    assert agg.names["issued_by"] is None
    assert agg.payments[0].recorded_by_name == "Office Admin"


def test_audit_trail_is_newest_first(db, perya_app, drive):
    drive(perya_app.id, "Pending Approval")
    trail = ApplicationService().audit_trail(db, application_id=perya_app.id)
    assert [r.action for r in trail] == ["SUBMIT_ASSESSMENT", "ASSESS_APP", "CREATE_APP"]


# ─────────── delete ───────────


def test_creator_deletes_own_pending_application(db, perya_app, principals):
    ApplicationService().delete(db, application_id=perya_app.id, principal=principals["Application Creator"])

    assert db.get(Application, perya_app.id) is None
    rows = db.execute(select(AuditLogRecord).order_by(AuditLogRecord.created_at)).scalars().all()
    assert [r.action for r in rows if r.action in ("CREATE_APP", "DELETE_APPLICATION")] == [
        "CREATE_APP",
        "DELETE_APPLICATION",
    ]
    assert all(r.application_id is None for r in rows)
    deleted = [r for r in rows if r.action == "DELETE_APPLICATION"][0]
    assert deleted.details_json["application_id"] == str(perya_app.id)


@pytest.mark.parametrize("role", ["Assessor", "Approver", "Viewer"])
def test_delete_by_other_roles_is_forbidden(db, perya_app, principals, role):
    with pytest.raises(AuthorizationError):
        ApplicationService().delete(db, application_id=perya_app.id, principal=principals[role])
    assert ApplicationService().get_application(db, application_id=perya_app.id) is not None


def test_delete_by_another_creator_is_forbidden(db, perya_app, principals, seeded):
    from permits.core.config import DEFAULT_ROLE_CAPABILITIES
    from permits.policies.rbac import build_principal

    other = build_principal(str(uuid.uuid4()), ["Application Creator"], "Other Clerk", DEFAULT_ROLE_CAPABILITIES)
    with pytest.raises(AuthorizationError):
        ApplicationService().delete(db, application_id=perya_app.id, principal=other)


def test_delete_after_assessment_is_conflict_even_for_superadmin(db, perya_app, principals, drive):
    drive(perya_app.id, "Assessed")
    with pytest.raises(ConflictError) as exc:
        ApplicationService().delete(db, application_id=perya_app.id, principal=principals["SuperAdmin"])
    assert exc.value.code == "DELETE_NOT_ALLOWED"


def test_delete_with_payments_is_conflict(db, perya_app, principals, seeded):
    db.add(
        Payment(
            application_id=perya_app.id,
            official_receipt_no="OR-STRAY",
            payment_date=date(2026, 1, 5),
            amount=Decimal("10.00"),
            recorded_by_id=seeded.users["Admin"],
        )
    )
    db.commit()
    with pytest.raises(ConflictError):
        ApplicationService().delete(db, application_id=perya_app.id, principal=principals["SuperAdmin"])
    assert db.get(Application, perya_app.id) is not None


def test_delete_unknown_application(db, seeded, principals):
    with pytest.raises(NotFoundError):
        ApplicationService().delete(db, application_id=uuid.uuid4(), principal=principals["SuperAdmin"])


# ─────────── renew ───────────


def test_renew_issued_permit(db, perya_app, principals, drive):
    source = drive(perya_app.id, "Issued")
    renewed = ApplicationService().renew(db, application_id=source.id, principal=principals["Application Creator"])

    renewed = ApplicationService().get_application(db, application_id=renewed.id)
    assert renewed.status == "Pending"
    assert renewed.renewed_from_id == source.id
    assert renewed.application_number is None
    assert renewed.assessed_fees == []
    assert [(p.param_name, p.param_value) for p in renewed.parameters] == [("Location", "Plaza")]
    assert [r.action for r in ApplicationService().audit_trail(db, application_id=renewed.id)] == ["RENEW_APP"]


def test_renew_before_issue_is_conflict(db, perya_app, principals, drive):
    drive(perya_app.id, "Paid")
    with pytest.raises(ConflictError) as exc:
        ApplicationService().renew(db, application_id=perya_app.id, principal=principals["Application Creator"])
    assert exc.value.code == "RENEW_NOT_ALLOWED"


def test_renew_requires_owner_or_approver(db, perya_app, principals, drive):
    from permits.core.config import DEFAULT_ROLE_CAPABILITIES
    from permits.policies.rbac import build_principal

    drive(perya_app.id, "Released")
    other = build_principal(str(uuid.uuid4()), ["Application Creator"], "Other Clerk", DEFAULT_ROLE_CAPABILITIES)
    with pytest.raises(AuthorizationError):
        ApplicationService().renew(db, application_id=perya_app.id, principal=other)

    renewed = ApplicationService().renew(db, application_id=perya_app.id, principal=principals["Admin"])
    assert renewed.renewed_from_id == perya_app.id


# ─────────── permit type ───────────


def test_change_permit_type_while_pending(db, perya_app, principals, seeded):
    app = ApplicationService().change_permit_type(
        db, application_id=perya_app.id, permit_type="Building", principal=principals["Application Creator"]
    )
    assert app.permit_type_id == seeded.permit_types["Building"]
    assert app.permit_type_name == "Building"
    trail = ApplicationService().audit_trail(db, application_id=perya_app.id)
    assert trail[0].action == "CHANGE_PERMIT_TYPE"
    assert trail[0].details_json == {"from": "Perya", "to": "Building"}


def test_change_permit_type_after_assessment_is_conflict(db, perya_app, principals, drive):
    drive(perya_app.id, "Assessed")
    with pytest.raises(ConflictError):
        ApplicationService().change_permit_type(
            db, application_id=perya_app.id, permit_type="Building", principal=principals["Admin"]
        )


def test_change_permit_type_with_locked_fees(db, perya_app, principals, drive):
    drive(perya_app.id, "Approved")
    with pytest.raises(ConflictError) as exc:
        ApplicationService().change_permit_type(
            db, application_id=perya_app.id, permit_type="Building", principal=principals["SuperAdmin"]
        )
    assert exc.value.code == "FEES_LOCKED"


def test_change_to_unknown_permit_type(db, perya_app, principals):
    with pytest.raises(ValidationError):
        ApplicationService().change_permit_type(
            db, application_id=perya_app.id, permit_type="Carnival", principal=principals["Admin"]
        )
