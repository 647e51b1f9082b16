"""CloudNativePG backend.

Resources are created from the rendered blueprint in document order, tagged
with ownership labels, and removed later by a label sweep rather than from an
inventory. Health comes from the primary ``Cluster`` resource only.
"""
from __future__ import annotations

import logging
from typing import Sequence

from dbforge.cluster.base import ClusterClient, split_kind_ref
from dbforge.core.config import POOLER_PORT
from dbforge.core.errors import (
    ApplyFailedError,
    ClusterError,
    ClusterNotFoundError,
    HealthCheckFailedError,
    ResourceMissingError,
    TemplateInvalidError,
)
from dbforge.domain.state import DatabaseStatus
from dbforge.providers.base import HealthResult, ProviderDatabase
from dbforge.providers.cnpg.labels import database_selector, inject_labels
from dbforge.services.rendering import RenderContext, render


logger = logging.getLogger(__name__)

PROVIDER_NAME = "cnpg"
CLUSTER_API_VERSION = "postgresql.cnpg.io/v1"
CLUSTER_KIND = "Cluster"

DEFAULT_SWEEP_KINDS = (
    ("postgresql.cnpg.io/v1", "Cluster"),
    ("postgresql.cnpg.io/v1", "Pooler"),
    ("postgresql.cnpg.io/v1", "ScheduledBackup"),
    ("v1", "ConfigMap"),
)

HEALTHY_PHASE = "Cluster in healthy state"
FAILED_PHASES = frozenset(
    {
        "Failed",
        "Error",
        "Cluster in unhealthy state",
        "Failed to create primary",
        "Failed to reconcile",
    }
)


def phase_to_status(phase: str | None) -> str:
    # Unknown phases count as provisioning so a new operator phase never fails a database.
    if phase == HEALTHY_PHASE:
        return DatabaseStatus.READY.value
    if phase in FAILED_PHASES:
        return DatabaseStatus.ERROR.value
    return DatabaseStatus.PROVISIONING.value


class CNPGProvider:
    def __init__(
        self,
        cluster: ClusterClient,
        sweep_kinds: Sequence[tuple[str, str]] = DEFAULT_SWEEP_KINDS,
    ) -> None:
        self._cluster = cluster
        self._sweep_kinds = tuple(sweep_kinds)

    @classmethod
    def from_kind_refs(cls, cluster: ClusterClient, refs: Sequence[str]) -> CNPGProvider:
        return cls(cluster, [split_kind_ref(ref) for ref in refs] or DEFAULT_SWEEP_KINDS)

    async def apply(self, database: ProviderDatabase, manifests: str) -> None:
        try:
            documents = render(manifests, RenderContext.for_database(database))
        except TemplateInvalidError as exc:
            raise ApplyFailedError(f"rendering manifests for {database.name}: {exc}") from exc

        # Apply strictly in template order; later documents may depend on earlier ones.
        for index, document in enumerate(documents):
            inject_labels(document, database.name)
            metadata = document["metadata"]
            if not metadata.get("namespace"):
                metadata["namespace"] = database.namespace
            try:
                await self._cluster.apply(document)
            except ClusterError as exc:
                raise ApplyFailedError(
                    f"applying document {index} ({document.get('kind')}/{metadata.get('name')}) "
                    f"for {database.name}: {exc}"
                ) from exc
            logger.info(
                "applied %s/%s for database %s", document.get("kind"), metadata.get("name"), database.name
            )

    async def delete(self, database: ProviderDatabase) -> None:
        selector = database_selector(database.name)
        for api_version, kind in self._sweep_kinds:
            try:
                items = await self._cluster.list_by_label(api_version, kind, database.namespace, selector)
            except ClusterNotFoundError:
                # Resource type not installed in this cluster.
                continue
            except ClusterError as exc:
                logger.warning(
                    "cnpg: failed to list %s for deletion of %s: %s", kind, database.name, exc
                )
                continue

            for item in items:
                name = (item.get("metadata") or {}).get("name")
                if not name:
                    continue
                try:
                    await self._cluster.delete(api_version, kind, database.namespace, name)
                except ClusterNotFoundError:
                    continue
                except ClusterError as exc:
                    logger.warning("cnpg: failed to delete %s %s for %s: %s", kind, name, database.name, exc)
                    continue
                logger.info("deleted %s/%s for database %s", kind, name, database.name)

    async def check_health(self, database: ProviderDatabase) -> HealthResult:
        try:
            cluster = await self._cluster.get(
                CLUSTER_API_VERSION, CLUSTER_KIND, database.namespace, database.cluster_name
            )
        except ClusterNotFoundError as exc:
            raise ResourceMissingError(
                f"cluster {database.namespace}/{database.cluster_name} not found"
            ) from exc
        except ClusterError as exc:
            raise HealthCheckFailedError(
                f"getting cluster {database.namespace}/{database.cluster_name}: {exc}"
            ) from exc

        phase = (cluster.get("status") or {}).get("phase")
        status = phase_to_status(phase)
        if status != DatabaseStatus.READY.value:
            return HealthResult(status=status)
        return HealthResult(
            status=status,
            host=f"{database.pooler_name}.{database.namespace}.svc.cluster.local",
            port=POOLER_PORT,
            secret_name=f"{database.cluster_name}-app",
        )
