from __future__ import annotations

from dbforge.cluster.memory import InMemoryClusterClient
from dbforge.domain.models import Blueprint, Database, Team, Tier
from dbforge.persistence.db import SessionLocal
from dbforge.persistence.repos import blueprints as blueprints_repo
from dbforge.persistence.repos import tiers as tiers_repo
from dbforge.providers.cnpg.provider import CLUSTER_API_VERSION, CLUSTER_KIND, CNPGProvider
from dbforge.providers.registry import ProviderRegistry
from dbforge.services import blueprints as blueprints_service
from dbforge.services import databases as databases_service
from dbforge.services import teams as teams_service
from dbforge.services import tiers as tiers_service


CLUSTER_AND_POOLER = """\
apiVersion: postgresql.cnpg.io/v1
kind: Cluster
metadata:
  name: {{ .ClusterName }}
  namespace: {{ .Namespace }}
  labels:
    team: {{ .OwnerTeam }}
spec:
  instances: 1
  storage:
    size: 1Gi
---
apiVersion: postgresql.cnpg.io/v1
kind: Pooler
metadata:
  name: {{ .PoolerName }}
spec:
  cluster:
    name: {{ .ClusterName }}
  instances: 1
  type: rw
"""


def memory_stack() -> tuple[InMemoryClusterClient, ProviderRegistry]:
    cluster = InMemoryClusterClient()
    return cluster, ProviderRegistry({"cnpg": CNPGProvider(cluster)})


async def seed_team(name: str = "payments") -> Team:
    async with SessionLocal() as session:
        return await teams_service.create_team(session, name=name)


async def seed_blueprint(
    registry: ProviderRegistry, name: str = "b1", manifests: str = CLUSTER_AND_POOLER
) -> Blueprint:
    async with SessionLocal() as session:
        return await blueprints_service.create_blueprint(
            session, registry, name=name, provider="cnpg", manifests=manifests
        )


async def seed_tier(name: str = "standard", blueprint: str = "b1") -> Tier:
    async with SessionLocal() as session:
        return await tiers_service.create_tier(session, name=name, blueprint=blueprint)


async def seed_unregistered_tier(name: str = "legacy", provider: str = "rds-v2") -> Tier:
    # Bypass the service check to model a blueprint whose provider was removed after creation.
    async with SessionLocal() as session:
        blueprint = await blueprints_repo.create_blueprint(
            session, name=f"{name}-bp", provider=provider, manifests=CLUSTER_AND_POOLER
        )
        tier = await tiers_repo.create_tier(
            session,
            name=name,
            description="",
            blueprint_id=blueprint.id,
            destruction_strategy="hard_delete",
            backup_enabled=False,
        )
        await session.commit()
        return tier


async def seed_database(
    registry: ProviderRegistry,
    name: str = "orders-db",
    owner_team: str = "payments",
    tier: str = "standard",
) -> Database:
    async with SessionLocal() as session:
        return await databases_service.create_database(
            session, registry, name=name, owner_team=owner_team, tier=tier, purpose="orders"
        )


async def seed_chain(registry: ProviderRegistry, name: str = "orders-db") -> Database:
    await seed_team()
    await seed_blueprint(registry)
    await seed_tier()
    return await seed_database(registry, name=name)


async def load_database(database_id: str) -> Database | None:
    # Read the row regardless of soft deletion.
    async with SessionLocal() as session:
        return await session.get(Database, database_id)


def set_cluster_phase(cluster: InMemoryClusterClient, db: Database, phase: str) -> None:
    cluster.set_status(CLUSTER_API_VERSION, CLUSTER_KIND, db.namespace, db.cluster_name, {"phase": phase})
