from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.core.errors import ProviderUnregisteredError
from dbforge.domain.models import Blueprint, Database
from dbforge.persistence.repos import blueprints as blueprints_repo
from dbforge.persistence.repos import teams as teams_repo
from dbforge.persistence.repos import tiers as tiers_repo
from dbforge.providers.base import Provider, ProviderDatabase
from dbforge.providers.registry import ProviderRegistry


@dataclass(frozen=True)
class ResolvedChain:
    # Everything a provider call needs, read fresh from the Database -> Tier -> Blueprint chain.
    provider: Provider
    database: ProviderDatabase
    blueprint: Blueprint


async def resolve_chain(
    session: AsyncSession, registry: ProviderRegistry, db: Database
) -> ResolvedChain:
    # A broken chain can only be repaired by an operator, so it is reported as permanent.
    if db.tier_id is None:
        raise ProviderUnregisteredError(f"database {db.name} has no tier")
    tier = await tiers_repo.get_tier(session, db.tier_id)
    if tier is None:
        raise ProviderUnregisteredError(f"tier {db.tier_id} for database {db.name} not found")
    if tier.blueprint_id is None:
        raise ProviderUnregisteredError(f"tier {tier.name} has no blueprint")
    blueprint = await blueprints_repo.get_blueprint(session, tier.blueprint_id)
    if blueprint is None:
        raise ProviderUnregisteredError(f"blueprint {tier.blueprint_id} for tier {tier.name} not found")

    provider = registry.get(blueprint.provider)
    if provider is None:
        raise ProviderUnregisteredError(
            f"provider {blueprint.provider!r} of blueprint {blueprint.name} is not registered"
        )

    team = await teams_repo.get_team(session, db.owner_team_id)
    view = ProviderDatabase(
        id=db.id,
        name=db.name,
        namespace=db.namespace,
        cluster_name=db.cluster_name,
        pooler_name=db.pooler_name,
        owner_team=team.name if team is not None else db.owner_team_id,
        owner_team_id=db.owner_team_id,
        tier=tier.name,
        tier_id=tier.id,
        blueprint=blueprint.name,
        provider=blueprint.provider,
    )
    return ResolvedChain(provider=provider, database=view, blueprint=blueprint)
