from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from permits.core.exceptions import ValidationError
from permits.core.money import to_money
from permits.models.permit_type import AssessmentRule, AssessmentRuleFee, PermitType


@dataclass(frozen=True)
class ResolvedRule:
    fee_id: uuid.UUID
    amount: Optional[Decimal]
    formula: Optional[Dict[str, Any]]
    fee_order: int
    rule_name: str


class PermitRulesService:
    """
    Permit type -> applicable fee rules.

    Active rules scoped to the application's attribute win; when none match,
    the permit type's unscoped active rules apply.
    """

    def get_permit_type(self, db: Session, *, permit_type: Union[uuid.UUID, str]) -> PermitType:
        """
        Accepts a permit type id or its name. Unknown or inactive types are a
        ValidationError (the caller supplied them).
        """
        row = None
        key = permit_type
        if not isinstance(key, uuid.UUID):
            key = str(key or "").strip()
            if not key:
                raise ValidationError("permit_type is required.", details={"field": "permit_type"})
            try:
                key = uuid.UUID(key)
            except ValueError:
                row = db.execute(select(PermitType).where(PermitType.name == key)).scalar_one_or_none()

        if isinstance(key, uuid.UUID):
            row = db.get(PermitType, key)

        if row is None:
            raise ValidationError(
                f"Unknown permit type: {permit_type}", details={"field": "permit_type", "value": str(permit_type)}
            )
        if not row.is_active:
            raise ValidationError(
                f"Permit type '{row.name}' is not active.", details={"field": "permit_type", "value": str(row.id)}
            )
        return row

    def resolve_rules(
        self,
        db: Session,
        *,
        permit_type_id: uuid.UUID,
        attribute: Optional[str] = None,
    ) -> List[ResolvedRule]:
        rules = db.execute(
            select(AssessmentRule)
            .where(AssessmentRule.permit_type_id == permit_type_id, AssessmentRule.is_active.is_(True))
            .order_by(AssessmentRule.rule_name.asc())
        ).scalars().all()

        scoped = [r for r in rules if attribute and r.attribute == attribute]
        chosen = scoped or [r for r in rules if r.attribute is None]
        if not chosen:
            return []

        fees = db.execute(
            select(AssessmentRuleFee, AssessmentRule.rule_name)
            .join(AssessmentRule, AssessmentRule.id == AssessmentRuleFee.rule_id)
            .where(AssessmentRuleFee.rule_id.in_([r.id for r in chosen]))
            .order_by(AssessmentRuleFee.fee_order.asc(), AssessmentRule.rule_name.asc())
        ).all()

        return [
            ResolvedRule(
                fee_id=f.fee_id,
                amount=to_money(f.amount) if f.amount is not None else None,
                formula=dict(f.formula_json) if f.formula_json else None,
                fee_order=int(f.fee_order),
                rule_name=rule_name,
            )
            for f, rule_name in fees
        ]
