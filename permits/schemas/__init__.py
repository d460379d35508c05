from permits.schemas.primitives import Money
from permits.schemas.applications import (
    ApplicationCreateIn,
    ApplicationDetailOut,
    ApplicationOut,
    AssessedFeeOut,
    AuditEntryOut,
)
from permits.schemas.payments import PaymentIn, PaymentOut, PaymentSummaryOut
