from __future__ import annotations

import logging

from dbforge.cluster.base import ClusterClient
from dbforge.cluster.memory import InMemoryClusterClient
from dbforge.core.config import Settings, get_settings, split_csv
from dbforge.core.errors import ClusterError, UnknownProviderError
from dbforge.providers.base import Provider
from dbforge.providers.cnpg.provider import PROVIDER_NAME as CNPG_PROVIDER, CNPGProvider
from dbforge.providers.registry import ProviderRegistry


logger = logging.getLogger(__name__)


async def build_cluster_client(settings: Settings | None = None) -> ClusterClient:
    settings = settings or get_settings()
    backend = (settings.cluster_backend or "kubernetes").lower()

    if backend == "memory":
        # Local development and tests run without a cluster.
        return InMemoryClusterClient()
    if backend == "kubernetes":
        # Imported lazily so the memory backend works without cluster credentials.
        from dbforge.cluster.kube import KubernetesClusterClient

        return await KubernetesClusterClient.connect(settings.kubeconfig_path)

    raise ClusterError(f"Unsupported cluster backend: {backend}")


def build_registry(settings: Settings | None, cluster: ClusterClient) -> ProviderRegistry:
    settings = settings or get_settings()
    providers: dict[str, Provider] = {}
    for name in split_csv(settings.enabled_providers):
        key = name.lower()
        if key == CNPG_PROVIDER:
            providers[key] = CNPGProvider.from_kind_refs(cluster, split_csv(settings.cnpg_sweep_kinds))
        else:
            raise UnknownProviderError(f"Unsupported provider in ENABLED_PROVIDERS: {name}")
    logger.info("provider registry built with %s", ", ".join(sorted(providers)) or "no providers")
    return ProviderRegistry(providers)
