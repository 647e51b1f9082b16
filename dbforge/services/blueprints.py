from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.core.errors import (
    DuplicateNameError,
    HasReferencesError,
    NotFoundError,
    TemplateInvalidError,
    UnknownProviderError,
)
from dbforge.domain.models import Blueprint
from dbforge.persistence.repos import blueprints as blueprints_repo
from dbforge.providers.registry import ProviderRegistry
from dbforge.services.rendering import validate_template


logger = logging.getLogger(__name__)


async def create_blueprint(
    session: AsyncSession,
    registry: ProviderRegistry,
    *,
    name: str,
    provider: str,
    manifests: str,
) -> Blueprint:
    # Validate everything up front; a stored blueprint can never be corrected afterwards.
    if not registry.has(provider):
        raise UnknownProviderError(f"provider {provider!r} is not registered")
    problems = validate_template(manifests, provider=provider)
    if problems:
        raise TemplateInvalidError("blueprint manifests are invalid", problems)
    if await blueprints_repo.get_blueprint_by_name(session, name) is not None:
        raise DuplicateNameError(f"blueprint {name!r} already exists")

    blueprint = await blueprints_repo.create_blueprint(
        session, name=name, provider=provider, manifests=manifests
    )
    await session.commit()
    logger.info("blueprint %s created for provider %s", name, provider)
    return blueprint


async def get_blueprint(session: AsyncSession, blueprint_id: str) -> Blueprint:
    blueprint = await blueprints_repo.get_blueprint(session, blueprint_id)
    if blueprint is None:
        raise NotFoundError(f"blueprint {blueprint_id} not found")
    return blueprint


async def get_blueprint_by_name(session: AsyncSession, name: str) -> Blueprint:
    blueprint = await blueprints_repo.get_blueprint_by_name(session, name)
    if blueprint is None:
        raise NotFoundError(f"blueprint {name!r} not found")
    return blueprint


async def list_blueprints(session: AsyncSession) -> list[Blueprint]:
    return await blueprints_repo.list_blueprints(session)


async def delete_blueprint(session: AsyncSession, blueprint_id: str) -> None:
    blueprint = await get_blueprint(session, blueprint_id)
    references = await blueprints_repo.count_tiers_for_blueprint(session, blueprint.id)
    if references:
        raise HasReferencesError(f"blueprint {blueprint.name} is referenced by {references} tier(s)")
    await blueprints_repo.delete_blueprint(session, blueprint.id)
    await session.commit()
    logger.info("blueprint %s deleted", blueprint.name)
