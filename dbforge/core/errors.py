from __future__ import annotations

from typing import Any


class DbforgeError(Exception):
    """Base error for dbforge."""


class NotFoundError(DbforgeError):
    """Tier, blueprint, team or database missing."""


class DuplicateNameError(DbforgeError):
    """A record with the same name already exists."""


class HasReferencesError(DbforgeError):
    """Delete blocked because other records still reference the target."""


class UnknownProviderError(DbforgeError):
    """Blueprint names a provider that is not registered."""


class InvalidFieldError(DbforgeError):
    """Field value outside the set of allowed values."""


class ImmutableFieldError(DbforgeError):
    """Attempt to change a field that is fixed after creation."""


class InvalidTransitionError(DbforgeError):
    """Database status change not allowed by the state machine."""


class TemplateInvalidError(DbforgeError):
    """Blueprint template failed structural validation or substitution."""

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = list(problems or [message])


class ProvisioningFailedError(DbforgeError):
    """Provisioning failed after the database record was persisted."""

    def __init__(self, message: str, *, database: Any | None = None) -> None:
        super().__init__(message)
        # The persisted record, already moved to the error status.
        self.database = database


class ApplyFailedError(ProvisioningFailedError):
    """Backend rejected or could not create the rendered resources."""


class ProviderUnregisteredError(ProvisioningFailedError):
    """Resolution chain ends in a provider that is not registered; permanent."""


class HealthCheckFailedError(DbforgeError):
    """Backend health check failed; transient, retried next cycle."""


class ResourceMissingError(HealthCheckFailedError):
    """Primary backend resource is gone; permanent."""


class ClusterError(DbforgeError):
    """Cluster API request failure."""


class ClusterNotFoundError(ClusterError):
    """Cluster resource (or resource type) does not exist."""


class ClusterConflictError(ClusterError):
    """Cluster resource already exists."""
