from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from loyalty.db.session import dispose_engine

T = TypeVar("T")

logger = structlog.get_logger(__name__)


async def _run_maintenance_job(job_name: str, job: Callable[[], Awaitable[T]]) -> T:
    structlog.contextvars.bind_contextvars(maintenance_job=job_name)
    # asyncpg connections are bound to the loop that opened them.
    await dispose_engine()
    try:
        return await job()
    except Exception:
        logger.exception("maintenance_job_failed", maintenance_job=job_name)
        raise
    finally:
        await dispose_engine()
        structlog.contextvars.unbind_contextvars("maintenance_job")


def run_maintenance_job(job_name: str, job: Callable[[], Awaitable[T]]) -> T:
    """Runs one async maintenance job from a sync Celery task on a fresh loop."""
    return asyncio.run(_run_maintenance_job(job_name, job))
