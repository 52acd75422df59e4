from __future__ import annotations

import os

# Point the engine at a throwaway SQLite store before any tenantgate module builds it.
os.environ["DATABASE_URL"] = os.environ.get(
    "TENANTGATE_TEST_DATABASE_URL", "sqlite+aiosqlite:///./.tenantgate-test.db"
)
os.environ.setdefault("SESSION_SECRET", "test-session-secret")

import pytest  # noqa: E402

from tenantgate.core.config import get_settings  # noqa: E402
from tenantgate.domain.models import Base  # noqa: E402
from tenantgate.persistence.db import engine  # noqa: E402
from tenantgate.services.context.cache import reset_context_cache  # noqa: E402


@pytest.fixture(autouse=True)
async def fresh_schema() -> None:
    # Rebuild every table so tests never see each other's rows.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_caches() -> None:
    yield
    get_settings.cache_clear()
    reset_context_cache()
