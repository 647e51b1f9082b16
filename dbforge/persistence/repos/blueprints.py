from __future__ import annotations

from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.core.errors import DuplicateNameError
from dbforge.domain.models import Blueprint, Tier


# Blueprints are immutable: this module deliberately has no update function.


async def create_blueprint(
    session: AsyncSession,
    *,
    name: str,
    provider: str,
    manifests: str,
) -> Blueprint:
    if await get_blueprint_by_name(session, name) is not None:
        raise DuplicateNameError(f"blueprint {name!r} already exists")
    blueprint = Blueprint(id=str(uuid4()), name=name, provider=provider, manifests=manifests)
    session.add(blueprint)
    try:
        await session.flush()
    except IntegrityError as exc:
        # Lost a race with a concurrent insert of the same name.
        await session.rollback()
        raise DuplicateNameError(f"blueprint {name!r} already exists") from exc
    return blueprint


async def get_blueprint(session: AsyncSession, blueprint_id: str) -> Blueprint | None:
    result = await session.execute(select(Blueprint).where(Blueprint.id == blueprint_id))
    return result.scalar_one_or_none()


async def get_blueprint_by_name(session: AsyncSession, name: str) -> Blueprint | None:
    result = await session.execute(select(Blueprint).where(Blueprint.name == name))
    return result.scalar_one_or_none()


async def list_blueprints(session: AsyncSession) -> list[Blueprint]:
    # Stable ordering keeps list responses deterministic.
    result = await session.execute(select(Blueprint).order_by(Blueprint.name, Blueprint.id))
    return list(result.scalars().all())


async def count_tiers_for_blueprint(session: AsyncSession, blueprint_id: str) -> int:
    result = await session.execute(
        select(func.count()).select_from(Tier).where(Tier.blueprint_id == blueprint_id)
    )
    return int(result.scalar() or 0)


async def delete_blueprint(session: AsyncSession, blueprint_id: str) -> bool:
    result = await session.execute(delete(Blueprint).where(Blueprint.id == blueprint_id))
    return bool(result.rowcount)
