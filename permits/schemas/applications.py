from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from permits.schemas.payments import PaymentOut
from permits.schemas.primitives import Money


# ─────────── requests ───────────

class ParameterIn(BaseModel):
    param_name: str = Field(..., description="Non-empty; names may repeat")
    param_value: Optional[str] = ""


class ApplicationCreateIn(BaseModel):
    entity_id: uuid.UUID
    permit_type: str = Field(..., description="Permit type id or name")
    attribute: Optional[str] = None
    parameters: List[ParameterIn] = Field(default_factory=list)


class PermitTypeChangeIn(BaseModel):
    permit_type: str


class ParametersAppendIn(BaseModel):
    parameters: List[ParameterIn]


class FeeAmountIn(BaseModel):
    amount: Decimal


class AdhocFeeIn(BaseModel):
    fee_name: Optional[str] = None
    amount: Decimal
    category_name: Optional[str] = None
    fee_id: Optional[uuid.UUID] = None


class RejectIn(BaseModel):
    reason: Optional[str] = None


class ReleaseIn(BaseModel):
    released_by: Optional[str] = None
    received_by: Optional[str] = None


# ─────────── responses ───────────

class ParameterOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    position: int
    param_name: str
    param_value: str


class AssessedFeeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    fee_id: Optional[uuid.UUID]
    fee_name: str
    category_name: Optional[str]
    assessed_amount: Money
    position: int
    is_adhoc: bool
    is_locked: bool
    formula_json: Optional[Dict[str, Any]] = None


class ApplicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    application_number: Optional[str]
    entity_id: uuid.UUID
    permit_type_id: uuid.UUID
    permit_type_name: str
    attribute: Optional[str]
    status: str
    creator_id: uuid.UUID
    assessor_id: Optional[uuid.UUID]
    approver_id: Optional[uuid.UUID]
    issued_by_id: Optional[uuid.UUID]
    rejection_reason: Optional[str]
    validity_date: Optional[str]
    permit_document_ref: Optional[str]
    released_by: Optional[str]
    received_by: Optional[str]
    renewed_from_id: Optional[uuid.UUID]
    created_at: datetime
    updated_at: datetime
    assessed_at: Optional[datetime]
    approved_at: Optional[datetime]
    rejected_at: Optional[datetime]
    paid_at: Optional[datetime]
    issued_at: Optional[datetime]
    released_at: Optional[datetime]


class ApplicationDetailOut(BaseModel):
    application: ApplicationOut
    entity_name: Optional[str]
    creator_name: Optional[str]
    assessor_name: Optional[str]
    approver_name: Optional[str]
    parameters: List[ParameterOut]
    assessed_fees: List[AssessedFeeOut]
    payments: List[PaymentOut]
    total_assessed: Money
    total_paid: Money
    outstanding: Money
    available_actions: List[str] = Field(default_factory=list)

    @classmethod
    def from_aggregate(cls, agg, actions: List[str]) -> "ApplicationDetailOut":
        return cls(
            application=ApplicationOut.model_validate(agg.application),
            entity_name=agg.entity_name,
            creator_name=agg.names.get("creator"),
            assessor_name=agg.names.get("assessor"),
            approver_name=agg.names.get("approver"),
            parameters=[ParameterOut.model_validate(p) for p in agg.parameters],
            assessed_fees=[AssessedFeeOut.model_validate(f) for f in agg.assessed_fees],
            payments=[PaymentOut.from_line(line) for line in agg.payments],
            total_assessed=agg.total_assessed,
            total_paid=agg.total_paid,
            outstanding=agg.outstanding,
            available_actions=actions,
        )


class AuditEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime
    request_id: Optional[str]
    actor_id: Optional[uuid.UUID]
    application_id: Optional[uuid.UUID]
    action: str
    description: str
    details_json: Dict[str, Any]
