from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.db.models.base import Base


class MemberLedger(Base):
    __tablename__ = "member_ledgers"
    __table_args__ = (
        CheckConstraint("points_balance >= 0", name="ck_member_ledgers_balance_non_negative"),
        CheckConstraint("cumulative_spend >= 0", name="ck_member_ledgers_spend_non_negative"),
        CheckConstraint(
            "tier IN ('BRONZE','SILVER','GOLD','PLATINUM')",
            name="ck_member_ledgers_tier",
        ),
        CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_member_ledgers_status"),
        UniqueConstraint("program_id", "external_id", name="uq_member_ledgers_program_external"),
        Index("idx_member_ledgers_program_tier", "program_id", "tier"),
        Index("idx_member_ledgers_updated_at", "updated_at"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    program_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("programs.id"),
        nullable=False,
    )
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    points_balance: Mapped[int] = mapped_column(
        BigInteger, nullable=False, server_default=text("0")
    )
    cumulative_spend: Mapped[int] = mapped_column(
        BigInteger, nullable=False, server_default=text("0")
    )
    tier: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'BRONZE'"))
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=text("'ACTIVE'")
    )
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    wallet_pass_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
