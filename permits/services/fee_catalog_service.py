from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from permits.core.exceptions import NotFoundError
from permits.core.money import to_money
from permits.models.fee_catalog import Fee, FeeCategory


@dataclass(frozen=True)
class FeeDefinition:
    fee_id: uuid.UUID
    fee_name: str
    default_amount: Decimal
    category_id: uuid.UUID
    category_name: str


def _definition(fee: Fee, category: FeeCategory) -> FeeDefinition:
    return FeeDefinition(
        fee_id=fee.id,
        fee_name=fee.fee_name,
        default_amount=to_money(fee.default_amount),
        category_id=category.id,
        category_name=category.category_name,
    )


class FeeCatalogService:
    """
    Read-only view over the fee catalog for the assessment engine.
    """

    def get_fee(self, db: Session, *, fee_id: uuid.UUID) -> FeeDefinition:
        row = db.execute(
            select(Fee, FeeCategory)
            .join(FeeCategory, FeeCategory.id == Fee.category_id)
            .where(Fee.id == fee_id)
        ).first()
        if row is None:
            raise NotFoundError("Fee", fee_id)
        return _definition(row[0], row[1])

    def list_fees_by_category(self, db: Session, *, category_id: uuid.UUID) -> List[FeeDefinition]:
        category = db.get(FeeCategory, category_id)
        if category is None:
            raise NotFoundError("FeeCategory", category_id)
        fees = db.execute(
            select(Fee)
            .where(Fee.category_id == category_id, Fee.is_active.is_(True))
            .order_by(Fee.fee_name.asc())
        ).scalars().all()
        return [_definition(f, category) for f in fees]
