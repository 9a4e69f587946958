from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from loyalty.claims.service import ClaimService
from loyalty.core.config import get_settings
from loyalty.db.session import SessionLocal
from loyalty.gateway.idempotency import IdempotencyStore
from loyalty.workers.asyncio_runner import run_maintenance_job
from loyalty.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


def _clamp_retention_days(value: int) -> int:
    return max(1, min(3650, int(value)))


async def run_claim_expiry_sweep_async() -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        expired_count = await ClaimService.expire_overdue(session, now_utc=now_utc)

    result = {"expired_claim_codes": expired_count}
    logger.info("claim_expiry_sweep_finished", **result)
    return result


async def run_idempotency_purge_async() -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    retention_days = _clamp_retention_days(get_settings().idempotency_retention_days)
    async with SessionLocal.begin() as session:
        deleted_count = await IdempotencyStore.purge_expired(
            session,
            now_utc=now_utc,
            retention=timedelta(days=retention_days),
        )

    result = {"deleted_idempotency_records": deleted_count, "retention_days": retention_days}
    logger.info("idempotency_purge_finished", **result)
    return result


@celery_app.task(name="loyalty.workers.tasks.ledger_maintenance.run_claim_expiry_sweep")
def run_claim_expiry_sweep() -> dict[str, int]:
    return run_maintenance_job("claim_expiry_sweep", run_claim_expiry_sweep_async)


@celery_app.task(name="loyalty.workers.tasks.ledger_maintenance.run_idempotency_purge")
def run_idempotency_purge() -> dict[str, int]:
    return run_maintenance_job("idempotency_purge", run_idempotency_purge_async)


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "claim-expiry-sweep-every-10-minutes": {
            "task": "loyalty.workers.tasks.ledger_maintenance.run_claim_expiry_sweep",
            "schedule": 600.0,
            "options": {"queue": "q_normal"},
        },
        "idempotency-purge-hourly": {
            "task": "loyalty.workers.tasks.ledger_maintenance.run_idempotency_purge",
            "schedule": 3600.0,
            "options": {"queue": "q_normal"},
        },
    }
)
