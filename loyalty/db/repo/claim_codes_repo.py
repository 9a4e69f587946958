from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.claim_codes import ClaimCode


class ClaimCodesRepo:
    @staticmethod
    async def get_by_code(session: AsyncSession, code: str) -> ClaimCode | None:
        stmt = select(ClaimCode).where(ClaimCode.code == code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_code_for_update(session: AsyncSession, code: str) -> ClaimCode | None:
        stmt = (
            select(ClaimCode)
            .where(ClaimCode.code == code)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def insert_if_code_free(session: AsyncSession, *, values: dict[str, object]) -> int | None:
        stmt = (
            postgresql_insert(ClaimCode)
            .values(**values)
            .on_conflict_do_nothing(index_elements=[ClaimCode.code])
            .returning(ClaimCode.id)
        )
        return await session.scalar(stmt)

    @staticmethod
    async def expire_overdue(session: AsyncSession, *, now_utc: datetime) -> int:
        stmt = (
            update(ClaimCode)
            .where(
                ClaimCode.status == "ISSUED",
                ClaimCode.expires_at.is_not(None),
                ClaimCode.expires_at <= now_utc,
            )
            .values(status="EXPIRED", updated_at=now_utc)
        )
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)

    @staticmethod
    async def count_by_status(
        session: AsyncSession,
        *,
        program_id: UUID,
        campaign_name: str | None = None,
    ) -> dict[str, int]:
        stmt = (
            select(ClaimCode.status, func.count(ClaimCode.id))
            .where(ClaimCode.program_id == program_id)
            .group_by(ClaimCode.status)
        )
        if campaign_name:
            stmt = stmt.where(ClaimCode.campaign_name == campaign_name)
        result = await session.execute(stmt)
        return {str(status): int(count) for status, count in result.all()}
