"""l1_loyalty_ledger_core

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0a1b2c3d4e5f"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "programs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column("earn_rate_multiplier", sa.Integer(), nullable=False, server_default=sa.text("10")),
        sa.Column("tier_bronze_max", sa.Integer(), nullable=False, server_default=sa.text("999")),
        sa.Column("tier_silver_max", sa.Integer(), nullable=False, server_default=sa.text("4999")),
        sa.Column("tier_gold_max", sa.Integer(), nullable=False, server_default=sa.text("14999")),
        sa.Column("tier_1_name", sa.String(32), nullable=False, server_default=sa.text("'Bronze'")),
        sa.Column("tier_2_name", sa.String(32), nullable=False, server_default=sa.text("'Silver'")),
        sa.Column("tier_3_name", sa.String(32), nullable=False, server_default=sa.text("'Gold'")),
        sa.Column("tier_4_name", sa.String(32), nullable=False, server_default=sa.text("'Platinum'")),
        sa.Column("campaign_budget_cents", sa.Integer(), nullable=False, server_default=sa.text("50000")),
        sa.Column("enrollment_bonus_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("wallet_program_id", sa.String(128), nullable=True),
        sa.Column("enrollment_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('ACTIVE','SUSPENDED')", name="ck_programs_status"),
        sa.CheckConstraint("earn_rate_multiplier > 0", name="ck_programs_earn_rate_positive"),
        sa.CheckConstraint(
            "tier_bronze_max >= 0 AND tier_bronze_max < tier_silver_max "
            "AND tier_silver_max < tier_gold_max",
            name="ck_programs_tier_thresholds_ordered",
        ),
        sa.CheckConstraint("campaign_budget_cents >= 0", name="ck_programs_campaign_budget_non_negative"),
        sa.CheckConstraint("enrollment_bonus_points >= 0", name="ck_programs_enrollment_bonus_non_negative"),
        sa.PrimaryKeyConstraint("id", name="pk_programs"),
    )

    op.create_table(
        "pos_api_keys",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("program_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("key_hash", sa.CHAR(64), nullable=False),
        sa.Column("key_prefix", sa.String(16), nullable=False),
        sa.Column("label", sa.String(128), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["program_id"], ["programs.id"], name="fk_pos_api_keys_program_id_programs"),
        sa.PrimaryKeyConstraint("id", name="pk_pos_api_keys"),
        sa.UniqueConstraint("key_hash", name="uq_pos_api_keys_key_hash"),
    )
    op.create_index("idx_pos_api_keys_program", "pos_api_keys", ["program_id"])

    op.create_table(
        "member_ledgers",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("program_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("external_id", sa.String(128), nullable=False),
        sa.Column("points_balance", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("cumulative_spend", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("tier", sa.String(16), nullable=False, server_default=sa.text("'BRONZE'")),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("first_name", sa.String(128), nullable=True),
        sa.Column("last_name", sa.String(128), nullable=True),
        sa.Column("wallet_pass_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("points_balance >= 0", name="ck_member_ledgers_balance_non_negative"),
        sa.CheckConstraint("cumulative_spend >= 0", name="ck_member_ledgers_spend_non_negative"),
        sa.CheckConstraint("tier IN ('BRONZE','SILVER','GOLD','PLATINUM')", name="ck_member_ledgers_tier"),
        sa.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_member_ledgers_status"),
        sa.ForeignKeyConstraint(["program_id"], ["programs.id"], name="fk_member_ledgers_program_id_programs"),
        sa.PrimaryKeyConstraint("id", name="pk_member_ledgers"),
        sa.UniqueConstraint("program_id", "external_id", name="uq_member_ledgers_program_external"),
    )
    op.create_index("idx_member_ledgers_program_tier", "member_ledgers", ["program_id", "tier"])
    op.create_index("idx_member_ledgers_updated_at", "member_ledgers", ["updated_at"])

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("member_ledger_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("program_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("requested_amount", sa.BigInteger(), nullable=False),
        sa.Column("previous_balance", sa.BigInteger(), nullable=False),
        sa.Column("new_balance", sa.BigInteger(), nullable=False),
        sa.Column("spend_delta", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("currency_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("multiplier_used", sa.Integer(), nullable=True),
        sa.Column("reject_reason", sa.String(32), nullable=True),
        sa.Column("idempotency_key", sa.String(128), nullable=True),
        sa.Column("external_reference", sa.String(128), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "action IN ('EARN','REDEEM','CLAIM_INSTALL','ADJUST')",
            name="ck_ledger_transactions_action",
        ),
        sa.CheckConstraint("status IN ('APPLIED','REJECTED')", name="ck_ledger_transactions_status"),
        sa.CheckConstraint(
            "status = 'APPLIED' OR amount = 0",
            name="ck_ledger_transactions_rejected_amount_zero",
        ),
        sa.CheckConstraint(
            "new_balance >= 0 AND previous_balance >= 0",
            name="ck_ledger_transactions_balances_non_negative",
        ),
        sa.CheckConstraint(
            "new_balance = previous_balance + amount",
            name="ck_ledger_transactions_balance_arithmetic",
        ),
        sa.ForeignKeyConstraint(
            ["member_ledger_id"],
            ["member_ledgers.id"],
            name="fk_ledger_transactions_member_ledger_id_member_ledgers",
        ),
        sa.ForeignKeyConstraint(
            ["program_id"],
            ["programs.id"],
            name="fk_ledger_transactions_program_id_programs",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_ledger_transactions"),
    )
    op.create_index(
        "idx_ledger_transactions_member_created",
        "ledger_transactions",
        ["member_ledger_id", "created_at"],
    )
    op.create_index(
        "idx_ledger_transactions_program_created",
        "ledger_transactions",
        ["program_id", "created_at"],
    )
    op.create_index(
        "idx_ledger_transactions_idempotency",
        "ledger_transactions",
        ["program_id", "idempotency_key"],
    )

    op.create_table(
        "idempotency_records",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("program_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=False),
        sa.Column("request_fingerprint", sa.CHAR(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("response_status", sa.SmallInteger(), nullable=True),
        sa.Column("response_body", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('PENDING','COMPLETED')", name="ck_idempotency_records_status"),
        sa.CheckConstraint(
            "status = 'PENDING' OR (response_status IS NOT NULL AND response_body IS NOT NULL)",
            name="ck_idempotency_records_completed_payload",
        ),
        sa.ForeignKeyConstraint(
            ["program_id"],
            ["programs.id"],
            name="fk_idempotency_records_program_id_programs",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_idempotency_records"),
        sa.UniqueConstraint("program_id", "idempotency_key", name="uq_idempotency_records_program_key"),
    )
    op.create_index("idx_idempotency_records_created_at", "idempotency_records", ["created_at"])

    op.create_table(
        "claim_codes",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("program_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("first_name", sa.String(128), nullable=True),
        sa.Column("last_name", sa.String(128), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("external_member_id", sa.String(128), nullable=True),
        sa.Column("address_line1", sa.String(256), nullable=True),
        sa.Column("address_city", sa.String(128), nullable=True),
        sa.Column("address_state", sa.String(64), nullable=True),
        sa.Column("address_postal_code", sa.String(32), nullable=True),
        sa.Column("campaign_name", sa.String(128), nullable=True),
        sa.Column("install_url", sa.Text(), nullable=True),
        sa.Column("member_ledger_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("cancel_reason", sa.String(256), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("installed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('ISSUED','INSTALLED','EXPIRED','CANCELLED')",
            name="ck_claim_codes_status",
        ),
        sa.CheckConstraint(
            "status <> 'INSTALLED' OR (install_url IS NOT NULL AND installed_at IS NOT NULL)",
            name="ck_claim_codes_installed_payload",
        ),
        sa.ForeignKeyConstraint(["program_id"], ["programs.id"], name="fk_claim_codes_program_id_programs"),
        sa.ForeignKeyConstraint(
            ["member_ledger_id"],
            ["member_ledgers.id"],
            name="fk_claim_codes_member_ledger_id_member_ledgers",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_claim_codes"),
        sa.UniqueConstraint("code", name="uq_claim_codes_code"),
    )
    op.create_index("idx_claim_codes_program_status", "claim_codes", ["program_id", "status"])
    op.create_index("idx_claim_codes_expires_at", "claim_codes", ["expires_at"])
    op.create_index("idx_claim_codes_campaign", "claim_codes", ["campaign_name"])

    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_ledger_transactions_append_only()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION 'ledger_transactions is append-only';
        END;
        $$;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_ledger_transactions_append_only
        BEFORE UPDATE OR DELETE ON ledger_transactions
        FOR EACH ROW
        EXECUTE FUNCTION fn_ledger_transactions_append_only();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_ledger_transactions_append_only ON ledger_transactions;")
    op.execute("DROP FUNCTION IF EXISTS fn_ledger_transactions_append_only();")

    op.drop_index("idx_claim_codes_campaign", table_name="claim_codes")
    op.drop_index("idx_claim_codes_expires_at", table_name="claim_codes")
    op.drop_index("idx_claim_codes_program_status", table_name="claim_codes")
    op.drop_table("claim_codes")

    op.drop_index("idx_idempotency_records_created_at", table_name="idempotency_records")
    op.drop_table("idempotency_records")

    op.drop_index("idx_ledger_transactions_idempotency", table_name="ledger_transactions")
    op.drop_index("idx_ledger_transactions_program_created", table_name="ledger_transactions")
    op.drop_index("idx_ledger_transactions_member_created", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")

    op.drop_index("idx_member_ledgers_updated_at", table_name="member_ledgers")
    op.drop_index("idx_member_ledgers_program_tier", table_name="member_ledgers")
    op.drop_table("member_ledgers")

    op.drop_index("idx_pos_api_keys_program", table_name="pos_api_keys")
    op.drop_table("pos_api_keys")

    op.drop_table("programs")
