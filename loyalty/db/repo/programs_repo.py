from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.programs import Program


class ProgramsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, program_id: UUID) -> Program | None:
        return await session.get(Program, program_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, program_id: UUID) -> Program | None:
        stmt = (
            select(Program)
            .where(Program.id == program_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def set_status(
        session: AsyncSession,
        *,
        program: Program,
        status: str,
        now_utc: datetime,
    ) -> Program:
        program.status = status
        program.updated_at = now_utc
        await session.flush()
        return program
