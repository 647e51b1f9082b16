from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass, field
import logging
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from dbforge.core.config import get_settings
from dbforge.core.errors import (
    HealthCheckFailedError,
    ProviderUnregisteredError,
    ResourceMissingError,
)
from dbforge.domain.models import Database
from dbforge.domain.state import RECONCILED_STATUSES, DatabaseStatus, can_transition
from dbforge.persistence.repos import databases as databases_repo
from dbforge.providers.base import HealthResult
from dbforge.providers.registry import ProviderRegistry
from dbforge.services.resolution import resolve_chain


logger = logging.getLogger(__name__)

OUTCOME_UNCHANGED = "unchanged"
OUTCOME_UPDATED = "updated"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"
OUTCOME_TIMEOUT = "timeout"


@dataclass
class CycleResult:
    status: str
    checked: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)

    def count(self, outcome: str) -> int:
        return self.outcomes.get(outcome, 0)


def _metadata_changed(db: Database, result: HealthResult) -> bool:
    return (db.host, db.port, db.secret_name) != (result.host, result.port, result.secret_name)


class Reconciler:
    """Periodically move databases to the status their provider reports.

    Each cycle lists the databases that can still move on their own and checks
    them concurrently, each in its own session and under its own timeout.
    Health is always read through the provider; the cluster is never queried
    directly from here.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        session_factory: Callable[[], Any] | None = None,
        interval_s: float | None = None,
        max_concurrency: int | None = None,
        check_timeout_s: float | None = None,
        batch_size: int | None = None,
    ) -> None:
        settings = get_settings()
        if session_factory is None:
            from dbforge.persistence.db import SessionLocal

            session_factory = SessionLocal
        self._registry = registry
        self._session_factory = session_factory
        self.interval_s = max(0.1, float(interval_s if interval_s is not None else settings.reconciler_interval_s))
        self.max_concurrency = max(
            1, int(max_concurrency if max_concurrency is not None else settings.reconciler_max_concurrency)
        )
        self.check_timeout_s = float(
            check_timeout_s if check_timeout_s is not None else settings.reconciler_check_timeout_s
        )
        self.batch_size = max(1, int(batch_size if batch_size is not None else settings.reconciler_batch_size))
        self._cycle_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    async def run_cycle(self) -> CycleResult:
        # Overlapping cycles are dropped rather than queued.
        if self._cycle_lock.locked():
            logger.info("reconciliation cycle skipped; previous cycle still running")
            return CycleResult(status="skipped")
        async with self._cycle_lock:
            statuses = [status.value for status in RECONCILED_STATUSES]
            database_ids = await self._list_reconcilable(statuses)

            semaphore = asyncio.Semaphore(self.max_concurrency)
            outcomes = await asyncio.gather(
                *(self._check_guarded(semaphore, database_id) for database_id in database_ids)
            )
            result = CycleResult(status="ok", checked=len(database_ids))
            for outcome in outcomes:
                result.outcomes[outcome] = result.outcomes.get(outcome, 0) + 1
            logger.debug("reconciliation cycle finished: %s", result.outcomes)
            return result

    async def _list_reconcilable(self, statuses: list[str]) -> list[str]:
        # Page through every active row; batch_size bounds each query, not the cycle.
        database_ids: list[str] = []
        after = None
        async with self._session_factory() as session:
            while True:
                keys = await databases_repo.list_keys_by_status(
                    session, statuses, limit=self.batch_size, after=after
                )
                database_ids.extend(database_id for _created_at, database_id in keys)
                if len(keys) < self.batch_size:
                    return database_ids
                after = keys[-1]

    async def _check_guarded(self, semaphore: asyncio.Semaphore, database_id: str) -> str:
        async with semaphore:
            try:
                return await asyncio.wait_for(self.reconcile_one(database_id), timeout=self.check_timeout_s)
            except asyncio.TimeoutError:
                logger.warning("health check for database %s timed out", database_id)
                return OUTCOME_TIMEOUT
            except Exception:  # noqa: BLE001
                logger.exception("health check for database %s failed", database_id)
                return OUTCOME_FAILED

    async def reconcile_one(self, database_id: str) -> str:
        async with self._session_factory() as session:
            db = await databases_repo.get_database(session, database_id)
            # The row may have been deleted or moved since the cycle listed it.
            if db is None or db.status not in {status.value for status in RECONCILED_STATUSES}:
                return OUTCOME_SKIPPED

            try:
                chain = await resolve_chain(session, self._registry, db)
                result = await chain.provider.check_health(chain.database)
            except (ProviderUnregisteredError, ResourceMissingError) as exc:
                logger.warning("database %s cannot recover on its own: %s", db.name, exc)
                return await self._store(session, db, HealthResult(status=DatabaseStatus.ERROR.value))
            except HealthCheckFailedError as exc:
                logger.warning("health check for database %s failed, retrying next cycle: %s", db.name, exc)
                return OUTCOME_UNCHANGED

            return await self._store(session, db, result)

    async def _store(self, session, db: Database, result: HealthResult) -> str:
        # Provisioning is the absence of news; a ready row never moves back to it.
        if result.status == DatabaseStatus.PROVISIONING.value:
            return OUTCOME_UNCHANGED
        # A ready report must carry connection details; an incomplete one is retried next cycle.
        if result.status == DatabaseStatus.READY.value and None in (result.host, result.port, result.secret_name):
            logger.warning("database %s reported ready without connection details; retrying next cycle", db.name)
            return OUTCOME_UNCHANGED
        if result.status == db.status:
            if result.status != DatabaseStatus.READY.value or not _metadata_changed(db, result):
                return OUTCOME_UNCHANGED
        elif not can_transition(db.status, result.status):
            logger.warning("ignoring %s -> %s for database %s", db.status, result.status, db.name)
            return OUTCOME_UNCHANGED

        previous = db.status
        try:
            stored = await databases_repo.update_status(
                session,
                db,
                status=result.status,
                host=result.host,
                port=result.port,
                secret_name=result.secret_name,
            )
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise
        if stored is None:
            logger.info("database %s was deleted during its health check", db.name)
            return OUTCOME_SKIPPED
        if previous != result.status:
            logger.info("database %s moved from %s to %s", db.name, previous, result.status)
        return OUTCOME_UPDATED

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        # Run cycles on a fixed cadence until asked to stop; in-flight checks are cancelled on stop.
        while not stop_event.is_set():
            cycle = asyncio.create_task(self.run_cycle())
            stopper = asyncio.create_task(stop_event.wait())
            done, _pending = await asyncio.wait({cycle, stopper}, return_when=asyncio.FIRST_COMPLETED)
            if cycle not in done:
                cycle.cancel()
                with suppress(asyncio.CancelledError):
                    await cycle
                break
            stopper.cancel()
            with suppress(asyncio.CancelledError):
                await stopper
            if cycle.exception() is not None:
                logger.error("reconciliation cycle failed", exc_info=cycle.exception())

            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_s)
        logger.info("reconciler stopped")

    def start(self) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run_forever(self._stop_event), name="dbforge-reconciler")
        logger.info(
            "reconciler started (interval=%ss, concurrency=%s, timeout=%ss)",
            self.interval_s,
            self.max_concurrency,
            self.check_timeout_s,
        )
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None
            self._stop_event = None
