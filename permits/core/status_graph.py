# permits/core/status_graph.py
from typing import Dict, FrozenSet, Union

from permits.core.statuses import ApplicationStatus

S = ApplicationStatus

ALLOWED_TRANSITIONS: Dict[ApplicationStatus, FrozenSet[ApplicationStatus]] = {
    S.PENDING: frozenset({S.ASSESSED}),
    S.ASSESSED: frozenset({S.PENDING_APPROVAL}),
    S.PENDING_APPROVAL: frozenset({S.APPROVED, S.REJECTED}),
    S.APPROVED: frozenset({S.PAID}),
    S.PAID: frozenset({S.ISSUED}),
    S.ISSUED: frozenset({S.RELEASED}),
    S.REJECTED: frozenset(),
    S.RELEASED: frozenset(),
}


def as_status(value: Union[str, ApplicationStatus]) -> ApplicationStatus:
    return value if isinstance(value, ApplicationStatus) else ApplicationStatus(value)


def can_transition(
    from_status: Union[str, ApplicationStatus],
    to_status: Union[str, ApplicationStatus],
) -> bool:
    return as_status(to_status) in ALLOWED_TRANSITIONS[as_status(from_status)]
