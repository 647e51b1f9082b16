from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.apps.api.deps import get_db, get_registry
from dbforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from dbforge.apps.api.response import SuccessEnvelope, success_response
from dbforge.domain.naming import check_name
from dbforge.domain.state import DatabaseStatus
from dbforge.persistence.repos.databases import MAX_PAGE_SIZE, ListFilter
from dbforge.providers.registry import ProviderRegistry
from dbforge.services import databases as databases_service
from dbforge.services.teams import resolve_team


router = APIRouter(prefix="/databases", tags=["databases"], responses=DEFAULT_ERROR_RESPONSES)


class DatabaseCreateRequest(BaseModel):
    name: str
    # Owning team id or name, supplied by the already-authenticated caller.
    owner_team: str = Field(min_length=1)
    tier: str = Field(min_length=1)
    purpose: str = ""
    namespace: str | None = None

    model_config = {"extra": "forbid"}

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        return check_name(value)

    @field_validator("namespace")
    @classmethod
    def _valid_namespace(cls, value: str | None) -> str | None:
        return check_name(value) if value is not None else None


class DatabasePatchRequest(BaseModel):
    purpose: str

    # Tier and name are fixed at creation; unknown fields are rejected.
    model_config = {"extra": "forbid"}


class DatabaseResponse(BaseModel):
    id: str
    name: str
    owner_team_id: str
    tier_id: str | None
    purpose: str
    namespace: str
    status: str
    host: str | None = None
    port: int | None = None
    secret_name: str | None = None
    created_at: str
    updated_at: str
    deleted_at: str | None = None


class DatabasePage(BaseModel):
    items: list[DatabaseResponse]
    page: int
    limit: int
    total: int


def _to_response(db) -> DatabaseResponse:
    # Connection metadata is only meaningful while the database is ready.
    ready = db.status == DatabaseStatus.READY.value
    return DatabaseResponse(
        id=db.id,
        name=db.name,
        owner_team_id=db.owner_team_id,
        tier_id=db.tier_id,
        purpose=db.purpose or "",
        namespace=db.namespace,
        status=db.status,
        host=db.host if ready else None,
        port=db.port if ready else None,
        secret_name=db.secret_name if ready else None,
        created_at=db.created_at.isoformat(),
        updated_at=db.updated_at.isoformat(),
        deleted_at=db.deleted_at.isoformat() if db.deleted_at else None,
    )


def _parse_statuses(values: list[str] | None) -> list[str]:
    statuses: list[str] = []
    for raw in values or []:
        for item in raw.split(","):
            item = item.strip()
            if not item:
                continue
            try:
                statuses.append(DatabaseStatus(item).value)
            except ValueError as exc:
                raise HTTPException(
                    status_code=422,
                    detail={"code": "VALIDATION_ERROR", "message": f"unknown status filter: {item}"},
                ) from exc
    return statuses


@router.post("", status_code=201, response_model=SuccessEnvelope[DatabaseResponse])
async def create_database(
    payload: DatabaseCreateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_registry),
) -> dict:
    database = await databases_service.create_database(
        db,
        registry,
        name=payload.name,
        owner_team=payload.owner_team,
        tier=payload.tier,
        purpose=payload.purpose,
        namespace=payload.namespace,
    )
    return success_response(request=request, data=_to_response(database))


@router.get("", response_model=SuccessEnvelope[DatabasePage])
async def list_databases(
    request: Request,
    status: list[str] | None = Query(default=None),
    owner_team: str | None = Query(default=None),
    name: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
) -> dict:
    owner_team_id = None
    if owner_team:
        owner_team_id = (await resolve_team(db, owner_team)).id
    list_filter = ListFilter(
        owner_team_id=owner_team_id,
        statuses=_parse_statuses(status),
        name=name,
        page=page,
        limit=limit,
    )
    rows, total = await databases_service.list_databases(db, list_filter)
    data = DatabasePage(items=[_to_response(row) for row in rows], page=page, limit=limit, total=total)
    return success_response(request=request, data=data)


@router.get("/{database_id}", response_model=SuccessEnvelope[DatabaseResponse])
async def get_database(database_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    database = await databases_service.get_database(db, database_id)
    return success_response(request=request, data=_to_response(database))


@router.patch("/{database_id}", response_model=SuccessEnvelope[DatabaseResponse])
async def patch_database(
    database_id: str,
    payload: DatabasePatchRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    database = await databases_service.update_purpose(db, database_id, payload.purpose)
    return success_response(request=request, data=_to_response(database))


@router.post("/{database_id}/retry", response_model=SuccessEnvelope[DatabaseResponse])
async def retry_database(
    database_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_registry),
) -> dict:
    database = await databases_service.retry_database(db, registry, database_id)
    return success_response(request=request, data=_to_response(database))


@router.delete("/{database_id}", response_model=SuccessEnvelope[DatabaseResponse])
async def delete_database(
    database_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_registry),
) -> dict:
    database = await databases_service.delete_database(db, registry, database_id)
    return success_response(request=request, data=_to_response(database))
