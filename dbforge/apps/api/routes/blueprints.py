from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.apps.api.deps import get_db, get_registry
from dbforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from dbforge.apps.api.response import SuccessEnvelope, success_response
from dbforge.domain.naming import check_name
from dbforge.providers.registry import ProviderRegistry
from dbforge.services import blueprints as blueprints_service


# Blueprints are write-once, so there is no PUT/PATCH route.
router = APIRouter(prefix="/blueprints", tags=["blueprints"], responses=DEFAULT_ERROR_RESPONSES)


class BlueprintCreateRequest(BaseModel):
    name: str
    provider: str = Field(min_length=1, max_length=63)
    manifests: str

    model_config = {"extra": "forbid"}

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        return check_name(value)


class BlueprintResponse(BaseModel):
    id: str
    name: str
    provider: str
    manifests: str
    created_at: str


def _to_response(blueprint) -> BlueprintResponse:
    return BlueprintResponse(
        id=blueprint.id,
        name=blueprint.name,
        provider=blueprint.provider,
        manifests=blueprint.manifests,
        created_at=blueprint.created_at.isoformat(),
    )


@router.post("", status_code=201, response_model=SuccessEnvelope[BlueprintResponse])
async def create_blueprint(
    payload: BlueprintCreateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_registry),
) -> dict:
    blueprint = await blueprints_service.create_blueprint(
        db,
        registry,
        name=payload.name,
        provider=payload.provider,
        manifests=payload.manifests,
    )
    return success_response(request=request, data=_to_response(blueprint))


@router.get("", response_model=SuccessEnvelope[list[BlueprintResponse]])
async def list_blueprints(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    blueprints = await blueprints_service.list_blueprints(db)
    return success_response(request=request, data=[_to_response(item) for item in blueprints])


@router.get("/{blueprint_id}", response_model=SuccessEnvelope[BlueprintResponse])
async def get_blueprint(blueprint_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    blueprint = await blueprints_service.get_blueprint(db, blueprint_id)
    return success_response(request=request, data=_to_response(blueprint))


@router.delete("/{blueprint_id}", response_model=SuccessEnvelope[dict[str, bool]])
async def delete_blueprint(blueprint_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    await blueprints_service.delete_blueprint(db, blueprint_id)
    return success_response(request=request, data={"deleted": True})
