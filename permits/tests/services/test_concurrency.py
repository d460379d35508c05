"""
Races between independent sessions on the same application. Each worker
thread owns its session; a barrier lines them up before the contended call.
"""
import threading
import time

import pytest
from sqlalchemy import select

from permits.core.exceptions import ConflictError
from permits.models.payment import Payment
from permits.services.applications_service import ApplicationService
from permits.services.assessment_service import AssessmentService
from permits.services.audit_service import AuditAction, AuditService
from permits.services.lifecycle_service import LifecycleService
from permits.services.payment_service import PaymentService


def race(session_factory, calls):
    """
    Run each call(session) in its own thread. Returns one outcome per call:
    ("ok", result) or ("conflict", error). Anything else is re-raised.
    """
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)
    unexpected = []

    def worker(idx, call):
        session = session_factory()
        try:
            barrier.wait(timeout=10)
            outcomes[idx] = ("ok", call(session))
        except ConflictError as exc:
            outcomes[idx] = ("conflict", exc)
        except Exception as exc:  # surfaced below
            unexpected.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(i, c)) for i, c in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    if unexpected:
        raise unexpected[0]
    return outcomes


def with_retry(call, attempts=20):
    def _run(session):
        for attempt in range(attempts - 1):
            try:
                return call(session)
            except ConflictError as exc:
                if not exc.retryable:
                    raise
                time.sleep(0.02 * (attempt + 1))
        return call(session)

    return _run


def test_concurrent_approvals_only_one_wins(db, session_factory, perya_app, principals, drive):
    drive(perya_app.id, "Pending Approval")
    app_id = perya_app.id
    db.commit()

    approver = principals["Approver"]

    def approve(session):
        return LifecycleService().approve(session, application_id=app_id, principal=approver).id

    outcomes = race(session_factory, [approve, approve])

    assert sorted(kind for kind, _ in outcomes) == ["conflict", "ok"]
    assert ApplicationService().get_application(db, application_id=app_id).status == "Approved"
    assert AuditService().count(db, application_id=app_id, action=AuditAction.APPROVE_APP) == 1


def test_approve_and_reject_race(db, session_factory, perya_app, principals, drive):
    drive(perya_app.id, "Pending Approval")
    app_id = perya_app.id
    db.commit()

    approver = principals["Approver"]

    def approve(session):
        return LifecycleService().approve(session, application_id=app_id, principal=approver).status

    def reject(session):
        return LifecycleService().reject(session, application_id=app_id, reason="Late", principal=approver).status

    outcomes = race(session_factory, [approve, reject])
    winners = [result for kind, result in outcomes if kind == "ok"]

    assert len(winners) == 1
    assert ApplicationService().get_application(db, application_id=app_id).status == winners[0]


def test_concurrent_full_payments_record_once(db, session_factory, perya_app, principals, drive):
    drive(perya_app.id, "Approved")
    app_id = perya_app.id
    db.commit()

    admin = principals["Admin"]

    def pay(receipt):
        def _pay(session):
            return PaymentService().record_payment(
                session,
                application_id=app_id,
                official_receipt_no=receipt,
                payment_date="2026-03-01",
                amount="650.00",
                principal=admin,
            ).official_receipt_no

        return _pay

    outcomes = race(session_factory, [pay("OR-A"), pay("OR-B")])

    assert sorted(kind for kind, _ in outcomes) == ["conflict", "ok"]
    assert len(db.execute(select(Payment.id).where(Payment.application_id == app_id)).all()) == 1
    assert ApplicationService().get_application(db, application_id=app_id).status == "Paid"
    assert AuditService().count(db, application_id=app_id, action=AuditAction.MARK_PAID) == 1


def test_concurrent_assessments_get_distinct_numbers(db, session_factory, seeded, principals):
    apps = [
        ApplicationService().create(
            db, entity_id=seeded.entity_id, permit_type="Perya", parameters=[], principal=principals["Admin"]
        ).id
        for _ in range(3)
    ]
    db.commit()

    assessor = principals["Assessor"]

    def assess(app_id):
        return with_retry(
            lambda session: AssessmentService().assess(
                session, application_id=app_id, principal=assessor
            ).application_number
        )

    outcomes = race(session_factory, [assess(a) for a in apps])

    assert all(kind == "ok" for kind, _ in outcomes)
    numbers = sorted(result for _, result in outcomes)
    assert len(set(numbers)) == 3
    assert [n.rsplit("-", 1)[1] for n in numbers] == ["0001", "0002", "0003"]


@pytest.mark.parametrize("workers", [4])
def test_concurrent_fee_edits_leave_consistent_total(db, session_factory, perya_app, principals, drive, workers):
    app = drive(perya_app.id, "Assessed")
    app_id = app.id
    fee_id = app.assessed_fees[0].id
    db.commit()

    assessor = principals["Assessor"]

    def edit(amount):
        return with_retry(
            lambda session: str(
                AssessmentService()
                .update_fee_amount(
                    session, application_id=app_id, assessed_fee_id=fee_id, new_amount=amount, principal=assessor
                )
                .assessed_amount
            )
        )

    amounts = [f"{500 + i}.00" for i in range(workers)]
    outcomes = race(session_factory, [edit(a) for a in amounts])

    assert all(kind == "ok" for kind, _ in outcomes)
    final = ApplicationService().get_application(db, application_id=app_id)
    assert str(final.assessed_fees[0].assessed_amount) in amounts
    assert AuditService().count(db, application_id=app_id, action=AuditAction.REASSESS_FEE) == workers
