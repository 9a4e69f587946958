from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.idempotency_records import IdempotencyRecord
from loyalty.db.repo.idempotency_repo import IdempotencyRepo
from loyalty.gateway.errors import IdempotencyConflictError, IdempotencyInFlightError

logger = structlog.get_logger(__name__)
RECORD_STATUS_COMPLETED = "COMPLETED"


def request_fingerprint(payload: dict[str, Any]) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class IdempotencyReservation:
    record: IdempotencyRecord
    replay_status: int | None = None
    replay_body: dict[str, object] | None = None

    @property
    def is_replay(self) -> bool:
        return self.replay_status is not None


class IdempotencyStore:
    @staticmethod
    async def reserve(
        session: AsyncSession,
        *,
        program_id: UUID,
        idempotency_key: str,
        fingerprint: str,
        now_utc: datetime,
    ) -> IdempotencyReservation:
        """Claims the key for this transaction or returns the cached response.

        Must run inside the transaction that performs the mutation, so the
        reservation and the stored response commit or roll back together.
        """
        record = await IdempotencyRepo.get_for_update(
            session,
            program_id=program_id,
            idempotency_key=idempotency_key,
        )
        if record is None:
            inserted = await IdempotencyRepo.create_pending(
                session,
                program_id=program_id,
                idempotency_key=idempotency_key,
                request_fingerprint=fingerprint,
                now_utc=now_utc,
            )
            record = await IdempotencyRepo.get_for_update(
                session,
                program_id=program_id,
                idempotency_key=idempotency_key,
            )
            if record is None:
                raise IdempotencyInFlightError
            if inserted:
                return IdempotencyReservation(record=record)

        if record.request_fingerprint != fingerprint:
            logger.warning(
                "idempotency_key_reused_with_different_payload",
                program_id=str(program_id),
                idempotency_key=idempotency_key,
            )
            raise IdempotencyConflictError
        if record.status != RECORD_STATUS_COMPLETED or record.response_status is None:
            raise IdempotencyInFlightError

        logger.info(
            "idempotency_replay",
            program_id=str(program_id),
            idempotency_key=idempotency_key,
            response_status=record.response_status,
        )
        return IdempotencyReservation(
            record=record,
            replay_status=record.response_status,
            replay_body=record.response_body or {},
        )

    @staticmethod
    async def complete(
        session: AsyncSession,
        *,
        reservation: IdempotencyReservation,
        status_code: int,
        body: dict[str, object],
        now_utc: datetime,
    ) -> None:
        await IdempotencyRepo.mark_completed(
            session,
            record=reservation.record,
            response_status=status_code,
            response_body=body,
            now_utc=now_utc,
        )

    @staticmethod
    async def purge_expired(
        session: AsyncSession,
        *,
        now_utc: datetime,
        retention: timedelta,
    ) -> int:
        return await IdempotencyRepo.delete_created_before(session, cutoff_utc=now_utc - retention)
