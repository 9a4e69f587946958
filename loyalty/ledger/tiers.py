from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

from loyalty.ledger.types import Tier, TierNames, TierProgress, TierThresholds

TIER_ORDER: tuple[Tier, ...] = (Tier.BRONZE, Tier.SILVER, Tier.GOLD, Tier.PLATINUM)
TIER_RANK: dict[Tier, int] = {tier: rank for rank, tier in enumerate(TIER_ORDER)}


def validate_thresholds(thresholds: TierThresholds) -> None:
    if thresholds.bronze_max < 0:
        raise ValueError("bronze_max must be non-negative")
    if not thresholds.bronze_max < thresholds.silver_max < thresholds.gold_max:
        raise ValueError("tier thresholds must be strictly increasing")


def tier_for_spend(cumulative_spend: int, thresholds: TierThresholds) -> Tier:
    if cumulative_spend <= thresholds.bronze_max:
        return Tier.BRONZE
    if cumulative_spend <= thresholds.silver_max:
        return Tier.SILVER
    if cumulative_spend <= thresholds.gold_max:
        return Tier.GOLD
    return Tier.PLATINUM


def is_upgrade(previous: Tier, new: Tier) -> bool:
    return TIER_RANK[new] > TIER_RANK[previous]


def tier_upper_bound(tier: Tier, thresholds: TierThresholds) -> int | None:
    if tier == Tier.BRONZE:
        return thresholds.bronze_max
    if tier == Tier.SILVER:
        return thresholds.silver_max
    if tier == Tier.GOLD:
        return thresholds.gold_max
    return None


def tier_progress(cumulative_spend: int, thresholds: TierThresholds) -> TierProgress | None:
    current = tier_for_spend(cumulative_spend, thresholds)
    upper_bound = tier_upper_bound(current, thresholds)
    if upper_bound is None:
        return None
    return TierProgress(
        next_tier=TIER_ORDER[TIER_RANK[current] + 1],
        spend_needed=upper_bound - cumulative_spend + 1,
    )


def tier_display_name(tier: Tier, names: TierNames) -> str:
    return {
        Tier.BRONZE: names.bronze,
        Tier.SILVER: names.silver,
        Tier.GOLD: names.gold,
        Tier.PLATINUM: names.platinum,
    }[tier]


def points_for_currency(currency_amount: Decimal, multiplier: int) -> int:
    if currency_amount <= 0:
        raise ValueError("currency_amount must be positive")
    if multiplier <= 0:
        raise ValueError("multiplier must be positive")
    return int((currency_amount * multiplier).to_integral_value(rounding=ROUND_FLOOR))
