from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.ledger_transactions import LedgerTransaction


class LedgerRepo:
    @staticmethod
    async def append(session: AsyncSession, *, entry: LedgerTransaction) -> LedgerTransaction:
        session.add(entry)
        await session.flush()
        return entry

    @staticmethod
    async def list_for_member(
        session: AsyncSession,
        *,
        member_ledger_id: UUID,
        limit: int = 50,
    ) -> list[LedgerTransaction]:
        stmt = (
            select(LedgerTransaction)
            .where(LedgerTransaction.member_ledger_id == member_ledger_id)
            .order_by(LedgerTransaction.created_at.desc(), LedgerTransaction.id.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def sum_applied_amounts(session: AsyncSession, *, member_ledger_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(LedgerTransaction.amount), 0)).where(
            LedgerTransaction.member_ledger_id == member_ledger_id,
            LedgerTransaction.status == "APPLIED",
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
