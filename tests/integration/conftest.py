from __future__ import annotations

import pytest
from sqlalchemy import text

from loyalty.core.integration_db_safety import assert_safe_integration_db, truncate_ledger_tables_sql
from loyalty.db.session import engine


@pytest.fixture(scope="session", autouse=True)
def guard_integration_db_target() -> None:
    assert_safe_integration_db(str(engine.url))


@pytest.fixture(autouse=True)
async def cleanup_db() -> None:
    # Dispose pooled connections between tests to avoid cross-event-loop asyncpg reuse.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    async with engine.begin() as conn:
        await conn.execute(text(truncate_ledger_tables_sql()))

    yield

    await engine.dispose()
