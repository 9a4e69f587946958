from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from loyalty.db.session import SessionLocal
from loyalty.gateway.rate_limit import get_rate_limit_redis
from loyalty.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)

CheckResult = dict[str, Any]
LEDGER_SCHEMA_SQL = text("SELECT to_regclass('ledger_transactions') IS NOT NULL")
CELERY_PING_TIMEOUT_SECONDS = 1.0

# Serving POS and claim traffic needs the ledger store and the rate limiter store.
READY_CHECKS = ("database", "redis")
HEALTH_CHECKS = ("database", "redis", "celery")


def _check_result(error: str | None = None, **details: Any) -> CheckResult:
    if error is not None:
        return {"status": "failed", "error": error}
    return {"status": "ok", **details}


async def _check_database() -> CheckResult:
    try:
        async with SessionLocal() as session:
            schema_present = (await session.execute(LEDGER_SCHEMA_SQL)).scalar_one()
    except (SQLAlchemyError, OSError):
        logger.warning("health_database_failed", exc_info=True)
        return _check_result("database_unavailable")
    if not schema_present:
        return _check_result("ledger_schema_missing")
    return _check_result()


async def _check_redis() -> CheckResult:
    try:
        pong = await get_rate_limit_redis().ping()
    except (RedisError, OSError):
        logger.warning("health_redis_failed", exc_info=True)
        return _check_result("redis_unavailable")
    if pong is not True:
        return _check_result("redis_unexpected_ping")
    return _check_result()


def _check_celery_worker_sync() -> CheckResult:
    try:
        inspector = celery_app.control.inspect(timeout=CELERY_PING_TIMEOUT_SECONDS)
        replies = inspector.ping() if inspector is not None else None
    except Exception:
        # Broker client errors differ per transport.
        logger.warning("health_celery_failed", exc_info=True)
        return _check_result("celery_unavailable")
    if not replies:
        return _check_result("celery_no_workers")
    return _check_result(workers=len(replies))


async def _check_celery_worker() -> CheckResult:
    return await asyncio.to_thread(_check_celery_worker_sync)


def _check_registry() -> dict[str, Callable[[], Awaitable[CheckResult]]]:
    return {
        "database": _check_database,
        "redis": _check_redis,
        "celery": _check_celery_worker,
    }


async def _run_checks(names: tuple[str, ...]) -> dict[str, CheckResult]:
    registry = _check_registry()
    results = await asyncio.gather(*(registry[name]() for name in names))
    return dict(zip(names, results))


def _checks_response(checks: dict[str, CheckResult], *, ok_label: str, failed_label: str) -> JSONResponse:
    passed = all(check.get("status") == "ok" for check in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if passed else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": ok_label if passed else failed_label, "checks": checks},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health")
async def health() -> JSONResponse:
    checks = await _run_checks(HEALTH_CHECKS)
    return _checks_response(checks, ok_label="ok", failed_label="degraded")


@router.get("/ready")
async def ready() -> JSONResponse:
    checks = await _run_checks(READY_CHECKS)
    return _checks_response(checks, ok_label="ready", failed_label="not_ready")
