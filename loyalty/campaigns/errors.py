class BudgetError(Exception):
    code = "BUDGET_ERROR"


class BudgetExceededError(BudgetError):
    code = "BUDGET_EXCEEDED"

    def __init__(
        self,
        *,
        budget_cents: int,
        estimated_cost_cents: int,
        overage_cents: int,
    ) -> None:
        super().__init__(
            f"estimated cost {estimated_cost_cents} exceeds budget {budget_cents} "
            f"by {overage_cents}"
        )
        self.budget_cents = budget_cents
        self.estimated_cost_cents = estimated_cost_cents
        self.overage_cents = overage_cents


class CampaignProgramNotFoundError(BudgetError):
    code = "NOT_FOUND"


class CampaignValidationError(BudgetError):
    code = "VALIDATION_ERROR"
