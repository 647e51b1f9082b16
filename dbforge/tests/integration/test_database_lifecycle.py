from __future__ import annotations

import pytest

from dbforge.core.errors import (
    ApplyFailedError,
    DuplicateNameError,
    HasReferencesError,
    InvalidTransitionError,
    NotFoundError,
    ProviderUnregisteredError,
    ProvisioningFailedError,
)
from dbforge.persistence.db import SessionLocal
from dbforge.persistence.repos import databases as databases_repo
from dbforge.persistence.repos.databases import ListFilter
from dbforge.providers.cnpg.provider import CNPGProvider
from dbforge.providers.registry import ProviderRegistry
from dbforge.services import databases as databases_service
from dbforge.services import tiers as tiers_service
from dbforge.services.reconciler import Reconciler
from dbforge.services.teams import resolve_team
from dbforge.tests.utils.seed import (
    load_database,
    memory_stack,
    seed_blueprint,
    seed_chain,
    seed_database,
    seed_team,
    seed_tier,
    seed_unregistered_tier,
    set_cluster_phase,
)


class _CountingProvider(CNPGProvider):
    def __init__(self, cluster) -> None:  # noqa: ANN001
        super().__init__(cluster)
        self.deletes = 0

    async def delete(self, database):  # noqa: ANN001
        self.deletes += 1
        await super().delete(database)


class _BrokenProvider:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    async def apply(self, database, manifests):  # noqa: ANN001
        raise self.exc

    async def delete(self, database):  # noqa: ANN001
        raise self.exc

    async def check_health(self, database):  # noqa: ANN001
        raise self.exc


@pytest.mark.asyncio
async def test_create_database_persists_provisioning_row_and_applies_resources() -> None:
    cluster, registry = memory_stack()
    db = await seed_chain(registry)

    assert db.status == "provisioning"
    assert db.namespace == "databases"
    assert db.cluster_name == "dbforge-orders-db"
    assert db.pooler_name == "dbforge-orders-db-pooler"
    assert (db.host, db.port, db.secret_name) == (None, None, None)
    assert sorted(obj["kind"] for obj in cluster.objects()) == ["Cluster", "Pooler"]


@pytest.mark.asyncio
async def test_create_database_with_unknown_tier_or_team_fails_without_row() -> None:
    _cluster, registry = memory_stack()
    await seed_team()
    async with SessionLocal() as session:
        with pytest.raises(NotFoundError, match="tier"):
            await databases_service.create_database(
                session, registry, name="orders-db", owner_team="payments", tier="gold"
            )
        with pytest.raises(NotFoundError, match="owner team"):
            await databases_service.create_database(
                session, registry, name="orders-db", owner_team="nobody", tier="gold"
            )
        rows, total = await databases_service.list_databases(session, ListFilter())
    assert (rows, total) == ([], 0)


@pytest.mark.asyncio
async def test_create_database_rejects_duplicate_active_name() -> None:
    _cluster, registry = memory_stack()
    await seed_chain(registry)
    with pytest.raises(DuplicateNameError):
        await seed_database(registry, name="orders-db")


@pytest.mark.asyncio
async def test_unregistered_provider_fails_creation_and_persists_error() -> None:
    _cluster, registry = memory_stack()
    await seed_team()
    await seed_unregistered_tier("legacy", provider="rds-v2")

    async with SessionLocal() as session:
        with pytest.raises(ProviderUnregisteredError) as excinfo:
            await databases_service.create_database(
                session, registry, name="legacy-db", owner_team="payments", tier="legacy"
            )

    assert isinstance(excinfo.value, ProvisioningFailedError)
    failed = excinfo.value.database
    assert failed is not None
    row = await load_database(failed.id)
    assert row.status == "error"
    assert row.deleted_at is None


@pytest.mark.asyncio
async def test_apply_failure_persists_error() -> None:
    broken = _BrokenProvider(RuntimeError("boom"))
    registry = ProviderRegistry({"cnpg": broken})
    await seed_team()
    await seed_blueprint(registry)
    await seed_tier()

    with pytest.raises(ApplyFailedError) as excinfo:
        await seed_database(registry)

    row = await load_database(excinfo.value.database.id)
    assert row.status == "error"


@pytest.mark.asyncio
async def test_delete_ready_database_calls_provider_once_and_soft_deletes() -> None:
    cluster, _registry = memory_stack()
    provider = _CountingProvider(cluster)
    registry = ProviderRegistry({"cnpg": provider})
    db = await seed_chain(registry)
    set_cluster_phase(cluster, db, "Cluster in healthy state")
    await Reconciler(registry, interval_s=1, max_concurrency=1, check_timeout_s=1, batch_size=10).run_cycle()
    assert (await load_database(db.id)).status == "ready"

    async with SessionLocal() as session:
        deleted = await databases_service.delete_database(session, registry, db.id)

    assert provider.deletes == 1
    assert deleted.status == "deleted"
    assert deleted.deleted_at is not None
    assert (deleted.host, deleted.port, deleted.secret_name) == (None, None, None)
    assert cluster.objects() == []
    async with SessionLocal() as session:
        with pytest.raises(NotFoundError):
            await databases_service.get_database(session, db.id)
        with pytest.raises(NotFoundError):
            await databases_service.delete_database(session, registry, db.id)


@pytest.mark.asyncio
async def test_delete_finalizes_even_when_backend_cleanup_fails() -> None:
    _cluster, registry = memory_stack()
    db = await seed_chain(registry)
    broken = ProviderRegistry({"cnpg": _BrokenProvider(RuntimeError("apiserver down"))})

    async with SessionLocal() as session:
        deleted = await databases_service.delete_database(session, broken, db.id)

    assert deleted.status == "deleted"


@pytest.mark.asyncio
async def test_delete_finalizes_when_provider_is_unregistered() -> None:
    _cluster, registry = memory_stack()
    db = await seed_chain(registry)

    async with SessionLocal() as session:
        deleted = await databases_service.delete_database(session, ProviderRegistry({}), db.id)

    assert deleted.status == "deleted"


@pytest.mark.asyncio
async def test_deleted_name_can_be_reused() -> None:
    _cluster, registry = memory_stack()
    first = await seed_chain(registry)
    async with SessionLocal() as session:
        await databases_service.delete_database(session, registry, first.id)

    second = await seed_database(registry, name="orders-db")

    assert second.id != first.id
    assert second.status == "provisioning"


@pytest.mark.asyncio
async def test_retry_moves_error_back_to_provisioning() -> None:
    cluster, registry = memory_stack()
    db = await seed_chain(registry)
    set_cluster_phase(cluster, db, "Failed")
    await Reconciler(registry, interval_s=1, max_concurrency=1, check_timeout_s=1, batch_size=10).run_cycle()
    assert (await load_database(db.id)).status == "error"

    async with SessionLocal() as session:
        retried = await databases_service.retry_database(session, registry, db.id)

    assert retried.status == "provisioning"


@pytest.mark.asyncio
async def test_retry_is_only_allowed_from_error() -> None:
    _cluster, registry = memory_stack()
    db = await seed_chain(registry)

    async with SessionLocal() as session:
        with pytest.raises(InvalidTransitionError):
            await databases_service.retry_database(session, registry, db.id)


@pytest.mark.asyncio
async def test_tier_with_databases_cannot_be_deleted() -> None:
    _cluster, registry = memory_stack()
    db = await seed_chain(registry)
    async with SessionLocal() as session:
        with pytest.raises(HasReferencesError):
            await tiers_service.delete_tier(session, db.tier_id)
    async with SessionLocal() as session:
        await databases_service.delete_database(session, registry, db.id)
    # Soft-deleted rows keep their tier reference.
    async with SessionLocal() as session:
        with pytest.raises(HasReferencesError):
            await tiers_service.delete_tier(session, db.tier_id)


@pytest.mark.asyncio
async def test_list_filters_and_pagination() -> None:
    _cluster, registry = memory_stack()
    await seed_team("payments")
    await seed_team("search")
    await seed_blueprint(registry)
    await seed_tier()
    for name in ("orders-db", "ledger-db", "refunds-db"):
        await seed_database(registry, name=name, owner_team="payments")
    await seed_database(registry, name="index-db", owner_team="search")

    async with SessionLocal() as session:
        rows, total = await databases_service.list_databases(session, ListFilter(name="DB", limit=2))
        assert total == 4
        assert len(rows) == 2
        rows, total = await databases_service.list_databases(session, ListFilter(name="der", page=1))
        assert total == 1 and rows[0].name == "orders-db"
        rows, total = await databases_service.list_databases(session, ListFilter(statuses=["ready"]))
        assert total == 0
        page_two, total = await databases_service.list_databases(session, ListFilter(limit=3, page=2))
        assert total == 4 and len(page_two) == 1
        search = await resolve_team(session, "search")
        rows, total = await databases_service.list_databases(session, ListFilter(owner_team_id=search.id))
        assert total == 1 and rows[0].name == "index-db"


@pytest.mark.asyncio
async def test_stale_status_write_does_not_touch_deleted_row() -> None:
    _cluster, registry = memory_stack()
    db = await seed_chain(registry)

    async with SessionLocal() as stale_session:
        stale = await databases_repo.get_database(stale_session, db.id)
        async with SessionLocal() as session:
            await databases_service.delete_database(session, registry, db.id)

        stored = await databases_repo.update_status(
            stale_session, stale, status="ready", host="db.svc", port=5432, secret_name="db-app"
        )
        await stale_session.commit()

    assert stored is None
    row = await load_database(db.id)
    assert row.status == "deleted"
    assert (row.host, row.port, row.secret_name) == (None, None, None)
