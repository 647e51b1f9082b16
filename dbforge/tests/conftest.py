from __future__ import annotations

import os
import tempfile

# Point settings at a throwaway SQLite file and the in-memory cluster before any dbforge import.
_DB_DIR = tempfile.mkdtemp(prefix="dbforge-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'dbforge.sqlite3')}"
os.environ["CLUSTER_BACKEND"] = "memory"
os.environ["ENABLED_PROVIDERS"] = "cnpg"
os.environ["RECONCILER_ENABLED"] = "false"
os.environ["DEFAULT_NAMESPACE"] = "databases"

import pytest  # noqa: E402

from dbforge.domain.models import Base  # noqa: E402
from dbforge.persistence.db import engine  # noqa: E402


@pytest.fixture(autouse=True)
async def reset_schema_between_tests() -> None:
    # Recreate every table so tests never see each other's rows.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()
