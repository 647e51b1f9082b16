from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence
from uuid import uuid4

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from dbforge.core.errors import DuplicateNameError
from dbforge.domain.models import Database
from dbforge.domain.state import DatabaseStatus


MAX_PAGE_SIZE = 100


@dataclass
class ListFilter:
    owner_team_id: str | None = None
    statuses: Sequence[str] = field(default_factory=tuple)
    # Case-insensitive substring match on the database name.
    name: str | None = None
    page: int = 1
    limit: int = 20


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def cluster_name_for(name: str) -> str:
    return f"dbforge-{name}"


def pooler_name_for(name: str) -> str:
    return f"dbforge-{name}-pooler"


async def create_database(
    session: AsyncSession,
    *,
    name: str,
    owner_team_id: str,
    tier_id: str,
    purpose: str,
    namespace: str,
) -> Database:
    # Derive backend resource names once so they stay stable for the record's lifetime.
    if await get_database_by_name(session, name) is not None:
        raise DuplicateNameError(f"database {name!r} already exists")
    db = Database(
        id=str(uuid4()),
        name=name,
        owner_team_id=owner_team_id,
        tier_id=tier_id,
        purpose=purpose,
        namespace=namespace,
        cluster_name=cluster_name_for(name),
        pooler_name=pooler_name_for(name),
        status=DatabaseStatus.PROVISIONING.value,
    )
    session.add(db)
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        raise DuplicateNameError(f"database {name!r} already exists") from exc
    return db


async def get_database(session: AsyncSession, database_id: str) -> Database | None:
    # Soft-deleted rows behave as missing for every caller.
    result = await session.execute(
        select(Database).where(Database.id == database_id, Database.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def get_database_by_name(session: AsyncSession, name: str) -> Database | None:
    result = await session.execute(
        select(Database).where(Database.name == name, Database.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def list_databases(session: AsyncSession, list_filter: ListFilter) -> tuple[list[Database], int]:
    page = max(1, int(list_filter.page))
    limit = max(1, min(int(list_filter.limit), MAX_PAGE_SIZE))

    conditions = [Database.deleted_at.is_(None)]
    if list_filter.owner_team_id is not None:
        conditions.append(Database.owner_team_id == list_filter.owner_team_id)
    if list_filter.statuses:
        conditions.append(Database.status.in_(list(list_filter.statuses)))
    if list_filter.name:
        conditions.append(func.lower(Database.name).contains(list_filter.name.lower()))

    total_result = await session.execute(select(func.count()).select_from(Database).where(*conditions))
    total = int(total_result.scalar() or 0)

    result = await session.execute(
        select(Database)
        .where(*conditions)
        .order_by(Database.created_at.desc(), Database.id)
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total


async def list_keys_by_status(
    session: AsyncSession,
    statuses: Sequence[str],
    *,
    limit: int = MAX_PAGE_SIZE,
    after: tuple[datetime, str] | None = None,
) -> list[tuple[datetime, str]]:
    """Return one keyset page of ``(created_at, id)`` pairs for active rows.

    Pass the last pair of a page as ``after`` to fetch the next one; a page
    shorter than ``limit`` is the last. The reconciler only needs ids because
    each check reloads its row in its own session.
    """
    conditions = [Database.deleted_at.is_(None), Database.status.in_(list(statuses))]
    if after is not None:
        created_at, database_id = after
        conditions.append(
            or_(
                Database.created_at > created_at,
                and_(Database.created_at == created_at, Database.id > database_id),
            )
        )
    result = await session.execute(
        select(Database.created_at, Database.id)
        .where(*conditions)
        .order_by(Database.created_at, Database.id)
        .limit(limit)
    )
    return [(row.created_at, row.id) for row in result.all()]


async def update_status(
    session: AsyncSession,
    db: Database,
    *,
    status: str,
    host: str | None = None,
    port: int | None = None,
    secret_name: str | None = None,
) -> Database | None:
    # Connection metadata is stored with ready and cleared for every other status.
    ready = status == DatabaseStatus.READY.value
    values = {
        "status": status,
        "host": host if ready else None,
        "port": port if ready else None,
        "secret_name": secret_name if ready else None,
        "updated_at": _utc_now(),
    }
    # Soft-deleted rows are final; a writer holding a stale copy changes nothing.
    result = await session.execute(
        update(Database)
        .where(Database.id == db.id, Database.deleted_at.is_(None))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    for key, value in values.items():
        set_committed_value(db, key, value)
    return db


async def update_purpose(session: AsyncSession, db: Database, purpose: str) -> Database:
    db.purpose = purpose
    db.updated_at = _utc_now()
    await session.flush()
    return db


async def soft_delete(session: AsyncSession, db: Database) -> Database:
    now = _utc_now()
    db.status = DatabaseStatus.DELETED.value
    db.host = None
    db.port = None
    db.secret_name = None
    db.deleted_at = now
    db.updated_at = now
    await session.flush()
    return db
