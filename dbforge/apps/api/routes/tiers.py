from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.apps.api.deps import get_db
from dbforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from dbforge.apps.api.response import SuccessEnvelope, success_response
from dbforge.domain.naming import check_name
from dbforge.services import tiers as tiers_service


router = APIRouter(prefix="/tiers", tags=["tiers"], responses=DEFAULT_ERROR_RESPONSES)

DestructionStrategy = Literal["freeze", "archive", "hard_delete"]


class TierCreateRequest(BaseModel):
    name: str
    # Blueprint name; stored as an id and never changed afterwards.
    blueprint: str = Field(min_length=1)
    description: str = ""
    destruction_strategy: DestructionStrategy = "hard_delete"
    backup_enabled: bool = False

    model_config = {"extra": "forbid"}

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        return check_name(value)


class TierPatchRequest(BaseModel):
    description: str | None = None
    destruction_strategy: DestructionStrategy | None = None
    backup_enabled: bool | None = None
    # Accepted only so attempts to change them get a precise IMMUTABLE_FIELD error.
    name: str | None = None
    blueprint: str | None = None
    blueprint_id: str | None = None

    model_config = {"extra": "forbid"}


class TierResponse(BaseModel):
    id: str
    name: str
    description: str
    blueprint_id: str | None
    destruction_strategy: str
    backup_enabled: bool
    created_at: str
    updated_at: str


def _to_response(tier) -> TierResponse:
    return TierResponse(
        id=tier.id,
        name=tier.name,
        description=tier.description or "",
        blueprint_id=tier.blueprint_id,
        destruction_strategy=tier.destruction_strategy,
        backup_enabled=bool(tier.backup_enabled),
        created_at=tier.created_at.isoformat(),
        updated_at=tier.updated_at.isoformat(),
    )


@router.post("", status_code=201, response_model=SuccessEnvelope[TierResponse])
async def create_tier(payload: TierCreateRequest, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    tier = await tiers_service.create_tier(
        db,
        name=payload.name,
        blueprint=payload.blueprint,
        description=payload.description,
        destruction_strategy=payload.destruction_strategy,
        backup_enabled=payload.backup_enabled,
    )
    return success_response(request=request, data=_to_response(tier))


@router.get("", response_model=SuccessEnvelope[list[TierResponse]])
async def list_tiers(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    tiers = await tiers_service.list_tiers(db)
    return success_response(request=request, data=[_to_response(tier) for tier in tiers])


@router.get("/{tier_id}", response_model=SuccessEnvelope[TierResponse])
async def get_tier(tier_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    tier = await tiers_service.get_tier(db, tier_id)
    return success_response(request=request, data=_to_response(tier))


@router.patch("/{tier_id}", response_model=SuccessEnvelope[TierResponse])
async def patch_tier(
    tier_id: str,
    payload: TierPatchRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    tier = await tiers_service.update_tier(db, tier_id, payload.model_dump(exclude_unset=True))
    return success_response(request=request, data=_to_response(tier))


@router.delete("/{tier_id}", response_model=SuccessEnvelope[dict[str, bool]])
async def delete_tier(tier_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    await tiers_service.delete_tier(db, tier_id)
    return success_response(request=request, data={"deleted": True})
