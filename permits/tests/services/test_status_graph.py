import itertools

import pytest

from permits.core.status_graph import ALLOWED_TRANSITIONS, can_transition
from permits.core.statuses import ApplicationStatus as S
from permits.services.lifecycle_service import LifecycleService

EDGES = {
    (S.PENDING, S.ASSESSED),
    (S.ASSESSED, S.PENDING_APPROVAL),
    (S.PENDING_APPROVAL, S.APPROVED),
    (S.PENDING_APPROVAL, S.REJECTED),
    (S.APPROVED, S.PAID),
    (S.PAID, S.ISSUED),
    (S.ISSUED, S.RELEASED),
}


def test_every_status_has_an_entry():
    assert set(ALLOWED_TRANSITIONS) == set(S)


@pytest.mark.parametrize("src,dst", list(itertools.product(S, S)))
def test_only_listed_edges_are_allowed(src, dst):
    assert can_transition(src, dst) is ((src, dst) in EDGES)


def test_terminal_states_have_no_exits():
    assert ALLOWED_TRANSITIONS[S.REJECTED] == frozenset()
    assert ALLOWED_TRANSITIONS[S.RELEASED] == frozenset()


def test_accepts_plain_strings():
    assert LifecycleService.can_transition("Pending Approval", "Rejected") is True
    assert LifecycleService.can_transition("Paid", "Approved") is False
