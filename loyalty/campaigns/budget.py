from __future__ import annotations

from decimal import Decimal

from loyalty.campaigns.errors import BudgetExceededError
from loyalty.campaigns.types import BudgetCheckResult, BudgetDisposition

DEFAULT_NEAR_BUDGET_RATIO = 0.8


def utilization_percent(*, budget_cents: int, estimated_cost_cents: int) -> float | None:
    if budget_cents <= 0:
        return None
    return round(estimated_cost_cents * 100 / budget_cents, 2)


def classify_budget(
    *,
    budget_cents: int,
    estimated_cost_cents: int,
    near_ratio: float = DEFAULT_NEAR_BUDGET_RATIO,
) -> BudgetDisposition:
    if estimated_cost_cents > budget_cents:
        return BudgetDisposition.OVER_BUDGET
    near_threshold = Decimal(budget_cents) * Decimal(str(near_ratio))
    if budget_cents > 0 and estimated_cost_cents >= near_threshold:
        return BudgetDisposition.NEAR_BUDGET
    return BudgetDisposition.WITHIN_BUDGET


def is_override_confirmed(*, confirmation: str | None, override_phrase: str) -> bool:
    if not confirmation or not override_phrase:
        return False
    return confirmation == override_phrase


def check_budget(
    *,
    budget_cents: int,
    estimated_cost_cents: int,
    confirmation: str | None = None,
    override_phrase: str,
    near_ratio: float = DEFAULT_NEAR_BUDGET_RATIO,
) -> BudgetCheckResult:
    """Classifies a planned spend against the ceiling.

    OVER_BUDGET raises BudgetExceededError unless ``confirmation`` matches the
    override phrase exactly (case and whitespace included).
    """
    if budget_cents < 0:
        raise ValueError("budget_cents must be non-negative")
    if estimated_cost_cents < 0:
        raise ValueError("estimated_cost_cents must be non-negative")

    disposition = classify_budget(
        budget_cents=budget_cents,
        estimated_cost_cents=estimated_cost_cents,
        near_ratio=near_ratio,
    )
    overage_cents = max(0, estimated_cost_cents - budget_cents)
    override_confirmed = False
    if disposition == BudgetDisposition.OVER_BUDGET:
        override_confirmed = is_override_confirmed(
            confirmation=confirmation,
            override_phrase=override_phrase,
        )
        if not override_confirmed:
            raise BudgetExceededError(
                budget_cents=budget_cents,
                estimated_cost_cents=estimated_cost_cents,
                overage_cents=overage_cents,
            )

    return BudgetCheckResult(
        disposition=disposition,
        budget_cents=budget_cents,
        estimated_cost_cents=estimated_cost_cents,
        utilization_percent=utilization_percent(
            budget_cents=budget_cents,
            estimated_cost_cents=estimated_cost_cents,
        ),
        overage_cents=overage_cents,
        override_confirmed=override_confirmed,
    )
