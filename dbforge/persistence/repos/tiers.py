from __future__ import annotations

from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.core.errors import DuplicateNameError
from dbforge.domain.models import Database, Tier


async def create_tier(
    session: AsyncSession,
    *,
    name: str,
    description: str,
    blueprint_id: str,
    destruction_strategy: str,
    backup_enabled: bool,
) -> Tier:
    if await get_tier_by_name(session, name) is not None:
        raise DuplicateNameError(f"tier {name!r} already exists")
    tier = Tier(
        id=str(uuid4()),
        name=name,
        description=description,
        blueprint_id=blueprint_id,
        destruction_strategy=destruction_strategy,
        backup_enabled=backup_enabled,
    )
    session.add(tier)
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        raise DuplicateNameError(f"tier {name!r} already exists") from exc
    return tier


async def get_tier(session: AsyncSession, tier_id: str) -> Tier | None:
    result = await session.execute(select(Tier).where(Tier.id == tier_id))
    return result.scalar_one_or_none()


async def get_tier_by_name(session: AsyncSession, name: str) -> Tier | None:
    result = await session.execute(select(Tier).where(Tier.name == name))
    return result.scalar_one_or_none()


async def list_tiers(session: AsyncSession) -> list[Tier]:
    result = await session.execute(select(Tier).order_by(Tier.name, Tier.id))
    return list(result.scalars().all())


async def update_fields(
    session: AsyncSession,
    tier_id: str,
    *,
    description: str | None = None,
    destruction_strategy: str | None = None,
    backup_enabled: bool | None = None,
) -> Tier | None:
    # blueprint_id is intentionally not updatable.
    tier = await get_tier(session, tier_id)
    if tier is None:
        return None
    if description is not None:
        tier.description = description
    if destruction_strategy is not None:
        tier.destruction_strategy = destruction_strategy
    if backup_enabled is not None:
        tier.backup_enabled = backup_enabled
    await session.flush()
    return tier


async def count_databases_for_tier(session: AsyncSession, tier_id: str) -> int:
    # Soft-deleted rows still hold the foreign key, so they count as references.
    result = await session.execute(
        select(func.count()).select_from(Database).where(Database.tier_id == tier_id)
    )
    return int(result.scalar() or 0)


async def delete_tier(session: AsyncSession, tier_id: str) -> bool:
    result = await session.execute(delete(Tier).where(Tier.id == tier_id))
    return bool(result.rowcount)
