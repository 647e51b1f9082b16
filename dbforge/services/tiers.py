from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.core.errors import (
    DuplicateNameError,
    HasReferencesError,
    ImmutableFieldError,
    InvalidFieldError,
    NotFoundError,
)
from dbforge.domain.models import Tier
from dbforge.persistence.repos import blueprints as blueprints_repo
from dbforge.persistence.repos import tiers as tiers_repo


logger = logging.getLogger(__name__)

DESTRUCTION_STRATEGIES = ("freeze", "archive", "hard_delete")
DEFAULT_DESTRUCTION_STRATEGY = "hard_delete"

MUTABLE_FIELDS = frozenset({"description", "destruction_strategy", "backup_enabled"})
# Fields fixed at creation; the blueprint link in particular has no update path.
IMMUTABLE_FIELDS = frozenset({"name", "blueprint", "blueprint_id", "blueprint_name"})


def _check_strategy(strategy: str) -> None:
    if strategy not in DESTRUCTION_STRATEGIES:
        raise InvalidFieldError(
            f"destruction_strategy must be one of {', '.join(DESTRUCTION_STRATEGIES)}"
        )


async def resolve_tier(session: AsyncSession, tier_name: str) -> Tier:
    # Tiers are chosen by name; everything downstream joins on the id.
    tier = await tiers_repo.get_tier_by_name(session, tier_name)
    if tier is None:
        raise NotFoundError(f"tier {tier_name!r} not found")
    return tier


async def create_tier(
    session: AsyncSession,
    *,
    name: str,
    blueprint: str,
    description: str = "",
    destruction_strategy: str = DEFAULT_DESTRUCTION_STRATEGY,
    backup_enabled: bool = False,
) -> Tier:
    _check_strategy(destruction_strategy)
    target = await blueprints_repo.get_blueprint_by_name(session, blueprint)
    if target is None:
        raise NotFoundError(f"blueprint {blueprint!r} not found")
    if await tiers_repo.get_tier_by_name(session, name) is not None:
        raise DuplicateNameError(f"tier {name!r} already exists")

    tier = await tiers_repo.create_tier(
        session,
        name=name,
        description=description,
        blueprint_id=target.id,
        destruction_strategy=destruction_strategy,
        backup_enabled=backup_enabled,
    )
    await session.commit()
    logger.info("tier %s created with blueprint %s", name, blueprint)
    return tier


async def get_tier(session: AsyncSession, tier_id: str) -> Tier:
    tier = await tiers_repo.get_tier(session, tier_id)
    if tier is None:
        raise NotFoundError(f"tier {tier_id} not found")
    return tier


async def list_tiers(session: AsyncSession) -> list[Tier]:
    return await tiers_repo.list_tiers(session)


async def update_tier(session: AsyncSession, tier_id: str, changes: Mapping[str, Any]) -> Tier:
    immutable = sorted(IMMUTABLE_FIELDS.intersection(changes))
    if immutable:
        raise ImmutableFieldError(f"tier field(s) cannot be changed: {', '.join(immutable)}")
    unknown = sorted(set(changes) - MUTABLE_FIELDS)
    if unknown:
        raise InvalidFieldError(f"unknown tier field(s): {', '.join(unknown)}")
    if changes.get("destruction_strategy") is not None:
        _check_strategy(changes["destruction_strategy"])

    tier = await tiers_repo.update_fields(
        session,
        tier_id,
        description=changes.get("description"),
        destruction_strategy=changes.get("destruction_strategy"),
        backup_enabled=changes.get("backup_enabled"),
    )
    if tier is None:
        raise NotFoundError(f"tier {tier_id} not found")
    await session.commit()
    return tier


async def delete_tier(session: AsyncSession, tier_id: str) -> None:
    tier = await get_tier(session, tier_id)
    references = await tiers_repo.count_databases_for_tier(session, tier.id)
    if references:
        raise HasReferencesError(f"tier {tier.name} is referenced by {references} database(s)")
    await tiers_repo.delete_tier(session, tier.id)
    await session.commit()
    logger.info("tier %s deleted", tier.name)
