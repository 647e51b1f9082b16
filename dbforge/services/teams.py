from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.core.errors import DuplicateNameError, NotFoundError
from dbforge.domain.models import Team
from dbforge.persistence.repos import teams as teams_repo


async def create_team(session: AsyncSession, *, name: str, team_id: str | None = None) -> Team:
    # Teams mirror the identity system; only the name is checked here.
    if await teams_repo.get_team_by_name(session, name) is not None:
        raise DuplicateNameError(f"team {name!r} already exists")
    team = await teams_repo.create_team(session, name=name, team_id=team_id)
    await session.commit()
    return team


async def resolve_team(session: AsyncSession, team: str) -> Team:
    # Accept either the team id or its name, as callers hold one or the other.
    found = await teams_repo.get_team(session, team)
    if found is None:
        found = await teams_repo.get_team_by_name(session, team)
    if found is None:
        raise NotFoundError(f"owner team {team!r} not found")
    return found


async def list_teams(session: AsyncSession) -> list[Team]:
    return await teams_repo.list_teams(session)
