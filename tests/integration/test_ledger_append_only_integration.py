from __future__ import annotations

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError

from loyalty.db.models.ledger_transactions import LedgerTransaction
from loyalty.db.session import SessionLocal
from loyalty.ledger.service import LedgerService
from tests.integration.ledger_fixtures import _create_program


async def _create_entry() -> int:
    program = await _create_program()
    async with SessionLocal.begin() as session:
        result = await LedgerService.earn(
            session,
            program=program,
            external_member_id="CUST-APPEND",
            points=25,
        )
    return result.transaction_id


@pytest.mark.asyncio
async def test_ledger_transactions_append_only_blocks_update_and_delete() -> None:
    entry_id = await _create_entry()

    with pytest.raises(DBAPIError):
        async with SessionLocal.begin() as session:
            await session.execute(
                text("UPDATE ledger_transactions SET amount = amount + 1 WHERE id = :entry_id"),
                {"entry_id": entry_id},
            )

    with pytest.raises(DBAPIError):
        async with SessionLocal.begin() as session:
            await session.execute(
                text("DELETE FROM ledger_transactions WHERE id = :entry_id"),
                {"entry_id": entry_id},
            )


@pytest.mark.asyncio
async def test_ledger_transactions_append_only_blocks_orm_mutations() -> None:
    entry_id = await _create_entry()

    with pytest.raises(ValueError, match="append-only"):
        async with SessionLocal.begin() as session:
            entry = await session.get(LedgerTransaction, entry_id)
            assert entry is not None
            entry.reject_reason = "EDITED"
            await session.flush()

    with pytest.raises(ValueError, match="append-only"):
        async with SessionLocal.begin() as session:
            entry = await session.scalar(
                select(LedgerTransaction).where(LedgerTransaction.id == entry_id)
            )
            assert entry is not None
            await session.delete(entry)
            await session.flush()
