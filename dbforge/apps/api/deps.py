from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.persistence.db import get_session
from dbforge.providers.registry import ProviderRegistry


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


def get_registry(request: Request) -> ProviderRegistry:
    # Built once per process in create_app or the lifespan handler.
    return request.app.state.registry
