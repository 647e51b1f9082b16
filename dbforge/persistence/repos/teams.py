from __future__ import annotations

from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.core.errors import DuplicateNameError
from dbforge.domain.models import Team


async def create_team(session: AsyncSession, *, name: str, team_id: str | None = None) -> Team:
    team = Team(id=team_id or str(uuid4()), name=name)
    session.add(team)
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        raise DuplicateNameError(f"team {name!r} already exists") from exc
    return team


async def get_team(session: AsyncSession, team_id: str) -> Team | None:
    result = await session.execute(select(Team).where(Team.id == team_id))
    return result.scalar_one_or_none()


async def get_team_by_name(session: AsyncSession, name: str) -> Team | None:
    result = await session.execute(select(Team).where(Team.name == name))
    return result.scalar_one_or_none()


async def list_teams(session: AsyncSession) -> list[Team]:
    result = await session.execute(select(Team).order_by(Team.name))
    return list(result.scalars().all())
