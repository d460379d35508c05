# permits/core/statuses.py
from enum import Enum


class ApplicationStatus(str, Enum):
    PENDING = "Pending"
    ASSESSED = "Assessed"
    PENDING_APPROVAL = "Pending Approval"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PAID = "Paid"
    ISSUED = "Issued"
    RELEASED = "Released"


# amounts on assessed fees may be edited only here
FEE_EDITABLE_STATUSES = frozenset(
    {
        ApplicationStatus.ASSESSED,
        ApplicationStatus.PENDING_APPROVAL,
    }
)
