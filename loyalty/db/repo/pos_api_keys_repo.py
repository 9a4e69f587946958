from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.pos_api_keys import PosApiKey
from loyalty.db.models.programs import Program


class PosApiKeysRepo:
    @staticmethod
    async def get_active_with_program(
        session: AsyncSession,
        key_hash: str,
    ) -> tuple[PosApiKey, Program] | None:
        stmt = (
            select(PosApiKey, Program)
            .join(Program, Program.id == PosApiKey.program_id)
            .where(
                PosApiKey.key_hash == key_hash,
                PosApiKey.is_active.is_(True),
            )
        )
        result = await session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return row[0], row[1]

    @staticmethod
    async def create(session: AsyncSession, *, api_key: PosApiKey) -> PosApiKey:
        session.add(api_key)
        await session.flush()
        return api_key

    @staticmethod
    async def touch_last_used(
        session: AsyncSession,
        *,
        api_key_id: int,
        now_utc: datetime,
    ) -> None:
        stmt = update(PosApiKey).where(PosApiKey.id == api_key_id).values(last_used_at=now_utc)
        await session.execute(stmt)

    @staticmethod
    async def deactivate(session: AsyncSession, *, api_key_id: int) -> int:
        stmt = (
            update(PosApiKey)
            .where(PosApiKey.id == api_key_id, PosApiKey.is_active.is_(True))
            .values(is_active=False)
        )
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)
