from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from dbforge.domain.state import DatabaseStatus


# Statuses a provider may report; deleting/deleted are owned by the request path.
HEALTH_STATUSES = frozenset(
    {DatabaseStatus.PROVISIONING.value, DatabaseStatus.READY.value, DatabaseStatus.ERROR.value}
)


@dataclass(frozen=True)
class ProviderDatabase:
    # Snapshot of the Database -> Tier -> Blueprint chain, resolved fresh per call.
    id: str
    name: str
    namespace: str
    cluster_name: str
    pooler_name: str
    owner_team: str
    owner_team_id: str
    tier: str
    tier_id: str
    blueprint: str
    provider: str


@dataclass(frozen=True)
class HealthResult:
    status: str
    host: str | None = None
    port: int | None = None
    secret_name: str | None = None

    def __post_init__(self) -> None:
        if self.status not in HEALTH_STATUSES:
            raise ValueError(f"unsupported health status: {self.status}")


class Provider(Protocol):
    async def apply(self, database: ProviderDatabase, manifests: str) -> None:
        ...

    async def delete(self, database: ProviderDatabase) -> None:
        ...

    async def check_health(self, database: ProviderDatabase) -> HealthResult:
        ...
