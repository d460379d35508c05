# Importing this package registers every mapped class on Base.metadata.
from permits.models.application import Application, ApplicationParameter  # noqa: F401
from permits.models.application_sequence import ApplicationSequence  # noqa: F401
from permits.models.assessed_fee import AssessedFee  # noqa: F401
from permits.models.audit_log import AuditLogRecord  # noqa: F401
from permits.models.entity import Entity  # noqa: F401
from permits.models.fee_catalog import Fee, FeeCategory  # noqa: F401
from permits.models.notification import Notification  # noqa: F401
from permits.models.payment import Payment  # noqa: F401
from permits.models.permit_type import AssessmentRule, AssessmentRuleFee, PermitType  # noqa: F401
from permits.models.user import User  # noqa: F401
