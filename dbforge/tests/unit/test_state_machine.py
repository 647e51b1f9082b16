from __future__ import annotations

import pytest

from dbforge.core.errors import InvalidTransitionError
from dbforge.domain.state import (
    RECONCILED_STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
    DatabaseStatus,
    can_transition,
    transition,
)


ALLOWED = {
    ("provisioning", "ready"),
    ("provisioning", "error"),
    ("provisioning", "deleting"),
    ("ready", "error"),
    ("ready", "deleting"),
    ("error", "provisioning"),
    ("error", "deleting"),
    ("deleting", "deleted"),
}


def test_transition_table_matches_lifecycle() -> None:
    statuses = [status.value for status in DatabaseStatus]
    for current in statuses:
        for target in statuses:
            assert can_transition(current, target) == ((current, target) in ALLOWED), (current, target)


def test_transition_returns_normalized_status() -> None:
    assert transition("provisioning", "ready") is DatabaseStatus.READY


@pytest.mark.parametrize(
    "current,target",
    [("ready", "provisioning"), ("deleted", "provisioning"), ("deleting", "ready"), ("provisioning", "deleted")],
)
def test_transition_rejects_disallowed_moves(current: str, target: str) -> None:
    with pytest.raises(InvalidTransitionError):
        transition(current, target)


def test_unknown_statuses_never_transition() -> None:
    assert not can_transition("ready", "paused")
    assert not can_transition("paused", "ready")


def test_deleted_is_terminal_and_never_reconciled() -> None:
    assert TRANSITIONS[DatabaseStatus.DELETED] == frozenset()
    assert DatabaseStatus.DELETED in TERMINAL_STATUSES
    assert DatabaseStatus.DELETED not in RECONCILED_STATUSES
    assert DatabaseStatus.ERROR not in RECONCILED_STATUSES
