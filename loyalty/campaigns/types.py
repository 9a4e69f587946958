from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from loyalty.claims.types import IssuedClaim


class BudgetDisposition(str, Enum):
    WITHIN_BUDGET = "WITHIN_BUDGET"
    NEAR_BUDGET = "NEAR_BUDGET"
    OVER_BUDGET = "OVER_BUDGET"


class MailingClass(str, Enum):
    STANDARD_CLASS = "standard_class"
    FIRST_CLASS = "first_class"


@dataclass(slots=True)
class BudgetCheckResult:
    disposition: BudgetDisposition
    budget_cents: int
    estimated_cost_cents: int
    utilization_percent: float | None
    overage_cents: int
    override_confirmed: bool = False

    @property
    def requires_warning(self) -> bool:
        return self.disposition != BudgetDisposition.WITHIN_BUDGET


@dataclass(slots=True)
class CostBreakdown:
    printing_cents: int
    postage_cents: int
    processing_cents: int


@dataclass(slots=True)
class CostEstimate:
    recipient_count: int
    size: str
    mailing_class: MailingClass
    unit_cost_cents: int
    total_cost_cents: int
    breakdown: CostBreakdown


@dataclass(slots=True)
class CampaignIssueResult:
    estimate: CostEstimate
    budget: BudgetCheckResult
    issued: list[IssuedClaim] = field(default_factory=list)
