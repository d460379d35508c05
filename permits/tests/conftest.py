import os

# Settings are read at import time by permits.db.session / permits.main
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")


import pytest
from sqlalchemy.orm import sessionmaker

# FORCE model registration
import permits.models  # noqa

from permits.core.config import DEFAULT_ROLE_CAPABILITIES
from permits.core.statuses import ApplicationStatus
from permits.db.base import Base
from permits.db.session import make_engine
from permits.policies.rbac import build_principal
from permits.seed import seed_demo_data
from permits.services.applications_service import ApplicationService
from permits.services.assessment_service import AssessmentService
from permits.services.lifecycle_service import LifecycleService
from permits.services.payment_service import PaymentService

S = ApplicationStatus


@pytest.fixture(scope="function")
def engine(tmp_path):
    url = os.getenv("TEST_DATABASE_URL")
    eng = make_engine(url or f"sqlite:///{tmp_path / 'permits.db'}")
    Base.metadata.drop_all(eng)
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(eng)
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded(db):
    return seed_demo_data(db)


@pytest.fixture
def principals(seeded):
    """role name -> Principal for the seeded user holding that role"""
    return {
        role: build_principal(str(user_id), [role], role, DEFAULT_ROLE_CAPABILITIES)
        for role, user_id in seeded.users.items()
    }


@pytest.fixture
def perya_app(db, seeded, principals):
    return ApplicationService().create(
        db,
        entity_id=seeded.entity_id,
        permit_type="Perya",
        parameters=[{"param_name": "Location", "param_value": "Plaza"}],
        principal=principals["Application Creator"],
    )


@pytest.fixture
def drive(db, principals):
    """
    Move an application forward to `target` through the real services.
    """
    admin = principals["Admin"]

    def _drive(application_id, target):
        target = ApplicationStatus(target)
        path = [S.ASSESSED, S.PENDING_APPROVAL]
        if target == S.REJECTED:
            path.append(S.REJECTED)
        elif target != S.PENDING:
            path += [S.APPROVED, S.PAID, S.ISSUED, S.RELEASED]
            path = path[: path.index(target) + 1]
        else:
            path = []

        for step in path:
            if step == S.ASSESSED:
                AssessmentService().assess(db, application_id=application_id, principal=admin)
            elif step == S.PENDING_APPROVAL:
                LifecycleService().submit_for_approval(db, application_id=application_id, principal=admin)
            elif step == S.APPROVED:
                LifecycleService().approve(db, application_id=application_id, principal=admin)
            elif step == S.REJECTED:
                LifecycleService().reject(db, application_id=application_id, reason="Incomplete", principal=admin)
            elif step == S.PAID:
                total = PaymentService().summary(db, application_id=application_id).total_assessed
                PaymentService().record_payment(
                    db,
                    application_id=application_id,
                    official_receipt_no="OR-DRIVE",
                    payment_date="2026-01-15",
                    amount=total,
                    principal=admin,
                )
            elif step == S.ISSUED:
                LifecycleService().issue(db, application_id=application_id, principal=admin)
            elif step == S.RELEASED:
                LifecycleService().release(
                    db,
                    application_id=application_id,
                    released_by="Records Clerk",
                    received_by="Juan Dela Cruz",
                    principal=admin,
                )
        return ApplicationService().get_application(db, application_id=application_id)

    return _drive


@pytest.fixture
def settings_override(monkeypatch):
    from permits.core.config import get_settings

    settings = get_settings()

    def _set(**values):
        for k, v in values.items():
            monkeypatch.setattr(settings, k, v)
        return settings

    return _set

