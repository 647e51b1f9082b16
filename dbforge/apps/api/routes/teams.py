from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.apps.api.deps import get_db
from dbforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from dbforge.apps.api.response import SuccessEnvelope, success_response
from dbforge.domain.naming import check_name
from dbforge.services import teams as teams_service


router = APIRouter(prefix="/teams", tags=["teams"], responses=DEFAULT_ERROR_RESPONSES)


class TeamCreateRequest(BaseModel):
    name: str
    # Identity-system id; generated when omitted.
    id: str | None = Field(default=None, max_length=36)

    model_config = {"extra": "forbid"}

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        return check_name(value)


class TeamResponse(BaseModel):
    id: str
    name: str
    created_at: str


def _to_response(team) -> TeamResponse:
    return TeamResponse(id=team.id, name=team.name, created_at=team.created_at.isoformat())


@router.post("", status_code=201, response_model=SuccessEnvelope[TeamResponse])
async def create_team(
    payload: TeamCreateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    team = await teams_service.create_team(db, name=payload.name, team_id=payload.id)
    return success_response(request=request, data=_to_response(team))


@router.get("", response_model=SuccessEnvelope[list[TeamResponse]])
async def list_teams(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    teams = await teams_service.list_teams(db)
    return success_response(request=request, data=[_to_response(team) for team in teams])
