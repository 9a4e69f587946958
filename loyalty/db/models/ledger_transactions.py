from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.db.models.base import Base


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        CheckConstraint(
            "action IN ('EARN','REDEEM','CLAIM_INSTALL','ADJUST')",
            name="ck_ledger_transactions_action",
        ),
        CheckConstraint(
            "status IN ('APPLIED','REJECTED')",
            name="ck_ledger_transactions_status",
        ),
        CheckConstraint(
            "status = 'APPLIED' OR amount = 0",
            name="ck_ledger_transactions_rejected_amount_zero",
        ),
        CheckConstraint(
            "new_balance >= 0 AND previous_balance >= 0",
            name="ck_ledger_transactions_balances_non_negative",
        ),
        CheckConstraint(
            "new_balance = previous_balance + amount",
            name="ck_ledger_transactions_balance_arithmetic",
        ),
        Index("idx_ledger_transactions_member_created", "member_ledger_id", "created_at"),
        Index("idx_ledger_transactions_program_created", "program_id", "created_at"),
        Index("idx_ledger_transactions_idempotency", "program_id", "idempotency_key"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    member_ledger_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("member_ledgers.id"),
        nullable=False,
    )
    program_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("programs.id"),
        nullable=False,
    )
    action: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    requested_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    previous_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)
    new_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)
    spend_delta: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default=text("0"))
    currency_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    multiplier_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reject_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    external_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


@event.listens_for(LedgerTransaction, "before_update")
def _reject_ledger_update(mapper, connection, target: LedgerTransaction) -> None:
    raise ValueError("ledger_transactions is append-only")


@event.listens_for(LedgerTransaction, "before_delete")
def _reject_ledger_delete(mapper, connection, target: LedgerTransaction) -> None:
    raise ValueError("ledger_transactions is append-only")
