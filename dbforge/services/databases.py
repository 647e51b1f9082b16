from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from dbforge.core.config import get_settings
from dbforge.core.errors import (
    ApplyFailedError,
    NotFoundError,
    ProviderUnregisteredError,
    ProvisioningFailedError,
)
from dbforge.domain.models import Database
from dbforge.domain.state import DatabaseStatus, transition
from dbforge.persistence.repos import databases as databases_repo
from dbforge.persistence.repos.databases import ListFilter
from dbforge.providers.registry import ProviderRegistry
from dbforge.services.resolution import resolve_chain
from dbforge.services.teams import resolve_team
from dbforge.services.tiers import resolve_tier


logger = logging.getLogger(__name__)


async def _mark_error(session: AsyncSession, db: Database) -> None:
    transition(db.status, DatabaseStatus.ERROR.value)
    if await databases_repo.update_status(session, db, status=DatabaseStatus.ERROR.value) is None:
        logger.warning("database %s was deleted before its failure could be recorded", db.name)
    await session.commit()


async def _apply(session: AsyncSession, registry: ProviderRegistry, db: Database) -> None:
    # The row is already committed as provisioning; any failure here leaves it in error.
    try:
        chain = await resolve_chain(session, registry, db)
        await chain.provider.apply(chain.database, chain.blueprint.manifests)
    except ProvisioningFailedError as exc:
        logger.warning("provisioning database %s failed: %s", db.name, exc)
        await _mark_error(session, db)
        exc.database = db
        raise
    except Exception as exc:
        logger.exception("provisioning database %s failed unexpectedly", db.name)
        await _mark_error(session, db)
        raise ApplyFailedError(f"applying resources for {db.name}: {exc}", database=db) from exc
    logger.info("database %s submitted for provisioning", db.name)


async def create_database(
    session: AsyncSession,
    registry: ProviderRegistry,
    *,
    name: str,
    owner_team: str,
    tier: str,
    purpose: str = "",
    namespace: str | None = None,
) -> Database:
    team = await resolve_team(session, owner_team)
    tier_row = await resolve_tier(session, tier)
    db = await databases_repo.create_database(
        session,
        name=name,
        owner_team_id=team.id,
        tier_id=tier_row.id,
        purpose=purpose,
        namespace=namespace or get_settings().default_namespace,
    )
    await session.commit()
    await _apply(session, registry, db)
    return db


async def retry_database(session: AsyncSession, registry: ProviderRegistry, database_id: str) -> Database:
    # The only way out of error other than deletion; resources are re-applied from the blueprint.
    db = await get_database(session, database_id)
    transition(db.status, DatabaseStatus.PROVISIONING.value)
    if await databases_repo.update_status(session, db, status=DatabaseStatus.PROVISIONING.value) is None:
        raise NotFoundError(f"database {database_id} not found")
    await session.commit()
    await _apply(session, registry, db)
    return db


async def delete_database(session: AsyncSession, registry: ProviderRegistry, database_id: str) -> Database:
    db = await get_database(session, database_id)
    if db.status != DatabaseStatus.DELETING.value:
        transition(db.status, DatabaseStatus.DELETING.value)
        if await databases_repo.update_status(session, db, status=DatabaseStatus.DELETING.value) is None:
            raise NotFoundError(f"database {database_id} not found")
        await session.commit()

    # Backend cleanup is best effort; the record is finalized regardless.
    try:
        chain = await resolve_chain(session, registry, db)
    except ProviderUnregisteredError as exc:
        logger.warning("skipping backend cleanup for database %s: %s", db.name, exc)
    else:
        try:
            await chain.provider.delete(chain.database)
        except Exception:
            logger.exception("backend cleanup for database %s failed", db.name)

    transition(db.status, DatabaseStatus.DELETED.value)
    await databases_repo.soft_delete(session, db)
    await session.commit()
    logger.info("database %s deleted", db.name)
    return db


async def get_database(session: AsyncSession, database_id: str) -> Database:
    db = await databases_repo.get_database(session, database_id)
    if db is None:
        raise NotFoundError(f"database {database_id} not found")
    return db


async def list_databases(session: AsyncSession, list_filter: ListFilter) -> tuple[list[Database], int]:
    return await databases_repo.list_databases(session, list_filter)


async def update_purpose(session: AsyncSession, database_id: str, purpose: str) -> Database:
    db = await get_database(session, database_id)
    await databases_repo.update_purpose(session, db, purpose)
    await session.commit()
    return db
