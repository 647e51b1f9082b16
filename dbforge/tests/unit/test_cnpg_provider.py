from __future__ import annotations

import pytest

from dbforge.cluster.memory import InMemoryClusterClient
from dbforge.core.errors import (
    ApplyFailedError,
    ClusterError,
    HealthCheckFailedError,
    ResourceMissingError,
    TemplateInvalidError,
)
from dbforge.providers.base import ProviderDatabase
from dbforge.providers.cnpg.labels import LABEL_DATABASE, LABEL_MANAGED_BY, inject_labels
from dbforge.providers.cnpg.provider import CLUSTER_API_VERSION, CLUSTER_KIND, CNPGProvider, phase_to_status
from dbforge.tests.utils.seed import CLUSTER_AND_POOLER


def _database(name: str = "orders-db", namespace: str = "databases") -> ProviderDatabase:
    return ProviderDatabase(
        id=f"id-{name}",
        name=name,
        namespace=namespace,
        cluster_name=f"dbforge-{name}",
        pooler_name=f"dbforge-{name}-pooler",
        owner_team="payments",
        owner_team_id="team-1",
        tier="standard",
        tier_id="tier-1",
        blueprint="b1",
        provider="cnpg",
    )


class _FailingCluster(InMemoryClusterClient):
    def __init__(self, *, fail_on_kind: str | None = None, fail_list_kind: str | None = None) -> None:
        super().__init__()
        self.fail_on_kind = fail_on_kind
        self.fail_list_kind = fail_list_kind

    async def apply(self, document):  # noqa: ANN001
        if document.get("kind") == self.fail_on_kind:
            raise ClusterError("admission webhook denied the request")
        return await super().apply(document)

    async def get(self, api_version, kind, namespace, name):  # noqa: ANN001
        if self.fail_on_kind == "get":
            raise ClusterError("connection refused")
        return await super().get(api_version, kind, namespace, name)

    async def list_by_label(self, api_version, kind, namespace, label_selector):  # noqa: ANN001
        if kind == self.fail_list_kind:
            raise ClusterError("forbidden")
        return await super().list_by_label(api_version, kind, namespace, label_selector)


def test_inject_labels_keeps_existing_labels() -> None:
    document = {"metadata": {"name": "x", "labels": {"team": "payments"}}}
    inject_labels(document, "orders-db")
    assert document["metadata"]["labels"] == {
        "team": "payments",
        LABEL_DATABASE: "orders-db",
        LABEL_MANAGED_BY: "dbforge",
    }


@pytest.mark.asyncio
async def test_apply_creates_documents_in_order_with_labels() -> None:
    cluster = InMemoryClusterClient()
    provider = CNPGProvider(cluster)

    await provider.apply(_database(), CLUSTER_AND_POOLER)

    assert [call[:3] for call in cluster.calls] == [
        ("apply", CLUSTER_API_VERSION, "Cluster"),
        ("apply", CLUSTER_API_VERSION, "Pooler"),
    ]
    for obj in cluster.objects():
        labels = obj["metadata"]["labels"]
        assert labels[LABEL_DATABASE] == "orders-db"
        assert labels[LABEL_MANAGED_BY] == "dbforge"
    pooler = await cluster.get(CLUSTER_API_VERSION, "Pooler", "databases", "dbforge-orders-db-pooler")
    # The pooler document has no namespace of its own and inherits the database's.
    assert pooler["metadata"]["namespace"] == "databases"


@pytest.mark.asyncio
async def test_apply_twice_replaces_instead_of_failing() -> None:
    cluster = InMemoryClusterClient()
    provider = CNPGProvider(cluster)

    await provider.apply(_database(), CLUSTER_AND_POOLER)
    await provider.apply(_database(), CLUSTER_AND_POOLER)

    assert len(cluster.objects()) == 2


@pytest.mark.asyncio
async def test_apply_rejects_unknown_placeholder_before_cluster_call() -> None:
    cluster = InMemoryClusterClient()
    provider = CNPGProvider(cluster)
    template = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: {{ .Unsupported }}\n"

    with pytest.raises(ApplyFailedError) as excinfo:
        await provider.apply(_database(), template)

    assert isinstance(excinfo.value.__cause__, TemplateInvalidError)
    assert cluster.calls == []


@pytest.mark.asyncio
async def test_apply_failure_names_the_document() -> None:
    cluster = _FailingCluster(fail_on_kind="Pooler")
    provider = CNPGProvider(cluster)

    with pytest.raises(ApplyFailedError, match=r"document 1 \(Pooler/dbforge-orders-db-pooler\)"):
        await provider.apply(_database(), CLUSTER_AND_POOLER)

    # Documents before the failing one were already applied.
    assert [obj["kind"] for obj in cluster.objects()] == ["Cluster"]


@pytest.mark.asyncio
async def test_delete_sweeps_only_labelled_resources() -> None:
    cluster = InMemoryClusterClient()
    provider = CNPGProvider(cluster)
    await provider.apply(_database("orders-db"), CLUSTER_AND_POOLER)
    await provider.apply(_database("billing-db"), CLUSTER_AND_POOLER)
    await cluster.apply(
        {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "unrelated", "namespace": "databases"}}
    )

    await provider.delete(_database("orders-db"))

    remaining = sorted(obj["metadata"]["name"] for obj in cluster.objects())
    assert remaining == ["dbforge-billing-db", "dbforge-billing-db-pooler", "unrelated"]


@pytest.mark.asyncio
async def test_delete_is_idempotent() -> None:
    cluster = InMemoryClusterClient()
    provider = CNPGProvider(cluster)
    await provider.apply(_database(), CLUSTER_AND_POOLER)

    await provider.delete(_database())
    await provider.delete(_database())

    assert cluster.objects() == []


@pytest.mark.asyncio
async def test_delete_continues_after_list_failure() -> None:
    cluster = _FailingCluster(fail_list_kind="Cluster")
    provider = CNPGProvider(cluster)
    await provider.apply(_database(), CLUSTER_AND_POOLER)

    await provider.delete(_database())

    assert [obj["kind"] for obj in cluster.objects()] == ["Cluster"]


@pytest.mark.asyncio
async def test_delete_sweeps_configured_kinds_only() -> None:
    cluster = InMemoryClusterClient()
    provider = CNPGProvider(cluster, [(CLUSTER_API_VERSION, "Pooler")])
    await provider.apply(_database(), CLUSTER_AND_POOLER)

    await provider.delete(_database())

    assert [obj["kind"] for obj in cluster.objects()] == ["Cluster"]


@pytest.mark.parametrize(
    "phase,expected",
    [
        ("Cluster in healthy state", "ready"),
        ("Failed", "error"),
        ("Error", "error"),
        ("Cluster in unhealthy state", "error"),
        ("Failed to create primary", "error"),
        ("Failed to reconcile", "error"),
        ("Setting up primary", "provisioning"),
        ("Creating replica", "provisioning"),
        (None, "provisioning"),
    ],
)
def test_phase_mapping(phase: str | None, expected: str) -> None:
    assert phase_to_status(phase) == expected


@pytest.mark.asyncio
async def test_check_health_ready_reports_connection_metadata() -> None:
    cluster = InMemoryClusterClient()
    provider = CNPGProvider(cluster)
    await provider.apply(_database(), CLUSTER_AND_POOLER)
    cluster.set_status(
        CLUSTER_API_VERSION, CLUSTER_KIND, "databases", "dbforge-orders-db", {"phase": "Cluster in healthy state"}
    )

    result = await provider.check_health(_database())

    assert result.status == "ready"
    assert result.host == "dbforge-orders-db-pooler.databases.svc.cluster.local"
    assert result.port == 5432
    assert result.secret_name == "dbforge-orders-db-app"


@pytest.mark.asyncio
async def test_check_health_without_status_is_provisioning() -> None:
    cluster = InMemoryClusterClient()
    provider = CNPGProvider(cluster)
    await provider.apply(_database(), CLUSTER_AND_POOLER)

    result = await provider.check_health(_database())

    assert result.status == "provisioning"
    assert (result.host, result.port, result.secret_name) == (None, None, None)


@pytest.mark.asyncio
async def test_check_health_missing_cluster_is_permanent() -> None:
    provider = CNPGProvider(InMemoryClusterClient())
    with pytest.raises(ResourceMissingError):
        await provider.check_health(_database())


@pytest.mark.asyncio
async def test_check_health_api_failure_is_transient() -> None:
    provider = CNPGProvider(_FailingCluster(fail_on_kind="get"))
    with pytest.raises(HealthCheckFailedError) as excinfo:
        await provider.check_health(_database())
    assert not isinstance(excinfo.value, ResourceMissingError)
