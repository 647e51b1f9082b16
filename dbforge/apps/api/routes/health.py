from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from dbforge.apps.api.deps import get_registry
from dbforge.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from dbforge.apps.api.response import SuccessEnvelope, success_response
from dbforge.providers.registry import ProviderRegistry

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    providers: list[str]


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health(request: Request, registry: ProviderRegistry = Depends(get_registry)) -> dict:
    payload = HealthResponse(status="ok", providers=registry.names())
    return success_response(request=request, data=payload)
