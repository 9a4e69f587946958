from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.idempotency_records import IdempotencyRecord


class IdempotencyRepo:
    @staticmethod
    async def get_for_update(
        session: AsyncSession,
        *,
        program_id: UUID,
        idempotency_key: str,
    ) -> IdempotencyRecord | None:
        stmt = (
            select(IdempotencyRecord)
            .where(
                IdempotencyRecord.program_id == program_id,
                IdempotencyRecord.idempotency_key == idempotency_key,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_pending(
        session: AsyncSession,
        *,
        program_id: UUID,
        idempotency_key: str,
        request_fingerprint: str,
        now_utc: datetime,
    ) -> bool:
        """Returns False when another transaction already owns the key.

        A concurrent uncommitted insert of the same key blocks this statement until
        that transaction finishes.
        """
        stmt = (
            postgresql_insert(IdempotencyRecord)
            .values(
                program_id=program_id,
                idempotency_key=idempotency_key,
                request_fingerprint=request_fingerprint,
                status="PENDING",
                response_status=None,
                response_body=None,
                created_at=now_utc,
                completed_at=None,
            )
            .on_conflict_do_nothing(
                index_elements=[IdempotencyRecord.program_id, IdempotencyRecord.idempotency_key],
            )
            .returning(IdempotencyRecord.id)
        )
        inserted_id = await session.scalar(stmt)
        return inserted_id is not None

    @staticmethod
    async def mark_completed(
        session: AsyncSession,
        *,
        record: IdempotencyRecord,
        response_status: int,
        response_body: dict[str, object],
        now_utc: datetime,
    ) -> IdempotencyRecord:
        record.status = "COMPLETED"
        record.response_status = response_status
        record.response_body = response_body
        record.completed_at = now_utc
        await session.flush()
        return record

    @staticmethod
    async def delete_created_before(session: AsyncSession, *, cutoff_utc: datetime) -> int:
        stmt = delete(IdempotencyRecord).where(IdempotencyRecord.created_at < cutoff_utc)
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)
