from __future__ import annotations

from enum import Enum

from dbforge.core.errors import InvalidTransitionError


class DatabaseStatus(str, Enum):
    PROVISIONING = "provisioning"
    READY = "ready"
    ERROR = "error"
    DELETING = "deleting"
    DELETED = "deleted"


# Allowed status changes; error -> provisioning is reachable only via an explicit retry.
TRANSITIONS: dict[DatabaseStatus, frozenset[DatabaseStatus]] = {
    DatabaseStatus.PROVISIONING: frozenset(
        {DatabaseStatus.READY, DatabaseStatus.ERROR, DatabaseStatus.DELETING}
    ),
    DatabaseStatus.READY: frozenset({DatabaseStatus.ERROR, DatabaseStatus.DELETING}),
    DatabaseStatus.ERROR: frozenset({DatabaseStatus.PROVISIONING, DatabaseStatus.DELETING}),
    DatabaseStatus.DELETING: frozenset({DatabaseStatus.DELETED}),
    DatabaseStatus.DELETED: frozenset(),
}

TERMINAL_STATUSES = frozenset({DatabaseStatus.DELETED})

# Statuses the reconciler may still move without operator action.
RECONCILED_STATUSES = (DatabaseStatus.PROVISIONING, DatabaseStatus.READY)


def can_transition(current: str, target: str) -> bool:
    try:
        source = DatabaseStatus(current)
        destination = DatabaseStatus(target)
    except ValueError:
        return False
    return destination in TRANSITIONS[source]


def transition(current: str, target: str) -> DatabaseStatus:
    # Validate a status change and return the normalized target status.
    if not can_transition(current, target):
        raise InvalidTransitionError(f"cannot move database from {current} to {target}")
    return DatabaseStatus(target)
