from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.db.models.base import Base


class ClaimCode(Base):
    __tablename__ = "claim_codes"
    __table_args__ = (
        CheckConstraint(
            "status IN ('ISSUED','INSTALLED','EXPIRED','CANCELLED')",
            name="ck_claim_codes_status",
        ),
        CheckConstraint(
            "status <> 'INSTALLED' OR (install_url IS NOT NULL AND installed_at IS NOT NULL)",
            name="ck_claim_codes_installed_payload",
        ),
        Index("idx_claim_codes_program_status", "program_id", "status"),
        Index("idx_claim_codes_expires_at", "expires_at"),
        Index("idx_claim_codes_campaign", "campaign_name"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    program_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("programs.id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    external_member_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    address_line1: Mapped[str | None] = mapped_column(String(256), nullable=True)
    address_city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    address_state: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address_postal_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    campaign_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    install_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    member_ledger_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("member_ledgers.id"),
        nullable=True,
    )
    cancel_reason: Mapped[str | None] = mapped_column(String(256), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    installed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
