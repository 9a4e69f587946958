from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.db.models.base import Base


class Program(Base):
    __tablename__ = "programs"
    __table_args__ = (
        CheckConstraint("status IN ('ACTIVE','SUSPENDED')", name="ck_programs_status"),
        CheckConstraint("earn_rate_multiplier > 0", name="ck_programs_earn_rate_positive"),
        CheckConstraint(
            "tier_bronze_max >= 0 AND tier_bronze_max < tier_silver_max "
            "AND tier_silver_max < tier_gold_max",
            name="ck_programs_tier_thresholds_ordered",
        ),
        CheckConstraint(
            "campaign_budget_cents >= 0",
            name="ck_programs_campaign_budget_non_negative",
        ),
        CheckConstraint(
            "enrollment_bonus_points >= 0",
            name="ck_programs_enrollment_bonus_non_negative",
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=text("'ACTIVE'")
    )
    earn_rate_multiplier: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("10")
    )
    tier_bronze_max: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("999")
    )
    tier_silver_max: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("4999")
    )
    tier_gold_max: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("14999")
    )
    tier_1_name: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text("'Bronze'")
    )
    tier_2_name: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text("'Silver'")
    )
    tier_3_name: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text("'Gold'")
    )
    tier_4_name: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text("'Platinum'")
    )
    campaign_budget_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("50000")
    )
    enrollment_bonus_points: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    wallet_program_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    enrollment_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
