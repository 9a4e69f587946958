from __future__ import annotations

from datetime import datetime

from loyalty.db.models.member_ledgers import MemberLedger
from loyalty.db.models.programs import Program
from loyalty.ledger.tiers import validate_thresholds
from loyalty.ledger.types import MemberSnapshot, Tier, TierNames, TierThresholds


def thresholds_from_program(program: Program) -> TierThresholds:
    thresholds = TierThresholds(
        bronze_max=program.tier_bronze_max,
        silver_max=program.tier_silver_max,
        gold_max=program.tier_gold_max,
    )
    validate_thresholds(thresholds)
    return thresholds


def tier_names_from_program(program: Program) -> TierNames:
    return TierNames(
        bronze=program.tier_1_name,
        silver=program.tier_2_name,
        gold=program.tier_3_name,
        platinum=program.tier_4_name,
    )


def snapshot_from_model(member: MemberLedger) -> MemberSnapshot:
    return MemberSnapshot(
        points_balance=member.points_balance,
        cumulative_spend=member.cumulative_spend,
        tier=Tier(member.tier),
    )


def apply_snapshot_to_model(
    member: MemberLedger,
    snapshot: MemberSnapshot,
    now_utc: datetime,
) -> None:
    member.points_balance = snapshot.points_balance
    member.cumulative_spend = snapshot.cumulative_spend
    member.tier = snapshot.tier.value
    member.updated_at = now_utc
