"""
Demo data: staff for every configured role, one entity, the fee catalog and
two permit types with their assessment rules.

    python -m permits.seed

Safe to run twice; existing rows (matched by name) are reused.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from permits.models.entity import Entity
from permits.models.fee_catalog import Fee, FeeCategory
from permits.models.permit_type import AssessmentRule, AssessmentRuleFee, PermitType
from permits.models.user import User

logger = logging.getLogger(__name__)

DEMO_USERS = [
    ("superadmin", "Super Admin", "SuperAdmin"),
    ("admin", "Office Admin", "Admin"),
    ("approver", "Permit Approver", "Approver"),
    ("assessor", "Fee Assessor", "Assessor"),
    ("creator", "Application Clerk", "Application Creator"),
    ("viewer", "Read Only", "Viewer"),
]


@dataclass
class SeedResult:
    users: Dict[str, uuid.UUID] = field(default_factory=dict)
    entity_id: Optional[uuid.UUID] = None
    fees: Dict[str, uuid.UUID] = field(default_factory=dict)
    permit_types: Dict[str, uuid.UUID] = field(default_factory=dict)


def _category(db: Session, name: str) -> FeeCategory:
    row = db.execute(select(FeeCategory).where(FeeCategory.category_name == name)).scalar_one_or_none()
    if row is None:
        row = FeeCategory(category_name=name)
        db.add(row)
        db.flush()
    return row


def _fee(db: Session, category: FeeCategory, name: str, amount: str) -> Fee:
    row = db.execute(
        select(Fee).where(Fee.category_id == category.id, Fee.fee_name == name)
    ).scalar_one_or_none()
    if row is None:
        row = Fee(category_id=category.id, fee_name=name, default_amount=Decimal(amount))
        db.add(row)
        db.flush()
    return row


def _permit_type(
    db: Session,
    name: str,
    *,
    validity_type: str = "fixed",
    validity_date: Optional[date] = None,
    rule_name: str,
    rule_fees: List[Dict[str, Any]],
) -> PermitType:
    row = db.execute(select(PermitType).where(PermitType.name == name)).scalar_one_or_none()
    if row is not None:
        return row

    row = PermitType(name=name, validity_type=validity_type, validity_date=validity_date)
    db.add(row)
    db.flush()

    rule = AssessmentRule(permit_type_id=row.id, rule_name=rule_name, attribute=None)
    db.add(rule)
    db.flush()
    for order, entry in enumerate(rule_fees):
        db.add(
            AssessmentRuleFee(
                rule_id=rule.id,
                fee_id=entry["fee"].id,
                amount=entry.get("amount"),
                formula_json=entry.get("formula"),
                fee_order=order,
            )
        )
    db.flush()
    return row


def seed_demo_data(db: Session, *, year: Optional[int] = None) -> SeedResult:
    year = year or date.today().year
    out = SeedResult()

    for username, full_name, role in DEMO_USERS:
        user = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
        if user is None:
            user = User(username=username, full_name=full_name, role_name=role)
            db.add(user)
            db.flush()
        out.users[role] = user.id

    entity = db.execute(select(Entity).where(Entity.entity_name == "Sample Amusements Inc.")).scalar_one_or_none()
    if entity is None:
        entity = Entity(
            entity_name="Sample Amusements Inc.",
            contact_person="Juan Dela Cruz",
            email="owner@example.com",
            phone="0917-000-0000",
        )
        db.add(entity)
        db.flush()
    out.entity_id = entity.id

    business = _category(db, "Business Permit Fees")
    health = _category(db, "Health Fees")
    engineering = _category(db, "Engineering Fees")

    mayors = _fee(db, business, "Mayor's Permit", "500.00")
    sanitary = _fee(db, health, "Sanitary Permit Fee", "150.00")
    building = _fee(db, engineering, "Building Permit Fee", "0.00")
    out.fees = {"Mayor's Permit": mayors.id, "Sanitary Permit Fee": sanitary.id, "Building Permit Fee": building.id}

    perya = _permit_type(
        db,
        "Perya",
        validity_date=date(year, 12, 31),
        rule_name="Perya standard fees",
        rule_fees=[{"fee": mayors}, {"fee": sanitary}],
    )
    building_type = _permit_type(
        db,
        "Building",
        validity_type="custom",
        rule_name="Building floor area",
        rule_fees=[
            {
                "fee": building,
                "formula": {"kind": "per_unit", "param": "Floor Area", "rate": "12.50", "minimum": "500.00"},
            },
            {"fee": sanitary, "amount": Decimal("200.00")},
        ],
    )
    out.permit_types = {"Perya": perya.id, "Building": building_type.id}

    db.commit()
    logger.info("demo data seeded", extra={"permit_types": sorted(out.permit_types)})
    return out


def main() -> None:
    from permits.core.config import get_settings
    from permits.core.logging import configure_logging
    from permits.db.session import SessionLocal

    configure_logging(get_settings())
    db = SessionLocal()
    try:
        seed_demo_data(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
