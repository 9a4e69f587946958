from __future__ import annotations

from dataclasses import replace

from loyalty.ledger.tiers import tier_for_spend
from loyalty.ledger.types import MemberSnapshot, TierThresholds


def apply_earn(
    snapshot: MemberSnapshot,
    *,
    points: int,
    spend_delta: int,
    thresholds: TierThresholds,
) -> MemberSnapshot:
    if points <= 0:
        raise ValueError("points must be positive")
    if spend_delta < 0:
        raise ValueError("spend_delta must be non-negative")

    cumulative_spend = snapshot.cumulative_spend + spend_delta
    return replace(
        snapshot,
        points_balance=snapshot.points_balance + points,
        cumulative_spend=cumulative_spend,
        tier=tier_for_spend(cumulative_spend, thresholds),
    )


def can_redeem(snapshot: MemberSnapshot, *, points: int) -> bool:
    return 0 < points <= snapshot.points_balance


def apply_redeem(snapshot: MemberSnapshot, *, points: int) -> MemberSnapshot:
    if not can_redeem(snapshot, points=points):
        raise ValueError("redeem amount exceeds balance")
    return replace(snapshot, points_balance=snapshot.points_balance - points)


def clamp_adjustment(snapshot: MemberSnapshot, *, delta: int) -> int:
    """Returns the signed delta that can be applied without going below zero."""
    if delta >= 0:
        return delta
    return max(delta, -snapshot.points_balance)


def apply_adjustment(snapshot: MemberSnapshot, *, delta: int) -> MemberSnapshot:
    applied = clamp_adjustment(snapshot, delta=delta)
    return replace(snapshot, points_balance=snapshot.points_balance + applied)
