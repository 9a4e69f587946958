from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.member_ledgers import MemberLedger


class MembersRepo:
    @staticmethod
    async def get_by_external_id(
        session: AsyncSession,
        *,
        program_id: UUID,
        external_id: str,
    ) -> MemberLedger | None:
        stmt = select(MemberLedger).where(
            MemberLedger.program_id == program_id,
            MemberLedger.external_id == external_id,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_external_id_for_update(
        session: AsyncSession,
        *,
        program_id: UUID,
        external_id: str,
    ) -> MemberLedger | None:
        stmt = (
            select(MemberLedger)
            .where(
                MemberLedger.program_id == program_id,
                MemberLedger.external_id == external_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create_for_update(
        session: AsyncSession,
        *,
        program_id: UUID,
        external_id: str,
        initial_tier: str,
        now_utc: datetime,
        email: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> tuple[MemberLedger, bool]:
        """Locks the member row, creating it first when absent.

        Concurrent first touches for the same external id resolve to a single row:
        the loser's insert is a no-op and its SELECT waits on the winner's lock.
        """
        stmt = (
            postgresql_insert(MemberLedger)
            .values(
                id=uuid4(),
                program_id=program_id,
                external_id=external_id,
                points_balance=0,
                cumulative_spend=0,
                tier=initial_tier,
                status="ACTIVE",
                email=email,
                first_name=first_name,
                last_name=last_name,
                created_at=now_utc,
                updated_at=now_utc,
            )
            .on_conflict_do_nothing(
                index_elements=[MemberLedger.program_id, MemberLedger.external_id],
            )
            .returning(MemberLedger.id)
        )
        inserted_id = await session.scalar(stmt)

        member = await MembersRepo.get_by_external_id_for_update(
            session,
            program_id=program_id,
            external_id=external_id,
        )
        if member is None:
            raise RuntimeError("member ledger row vanished after upsert")
        return member, inserted_id is not None

    @staticmethod
    async def set_status(
        session: AsyncSession,
        *,
        member: MemberLedger,
        status: str,
        now_utc: datetime,
    ) -> MemberLedger:
        member.status = status
        member.updated_at = now_utc
        await session.flush()
        return member
