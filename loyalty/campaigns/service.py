from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.campaigns.budget import check_budget
from loyalty.campaigns.cost import estimate_campaign_cost
from loyalty.campaigns.errors import (
    BudgetExceededError,
    CampaignProgramNotFoundError,
    CampaignValidationError,
)
from loyalty.campaigns.types import (
    BudgetCheckResult,
    BudgetDisposition,
    CampaignIssueResult,
    MailingClass,
)
from loyalty.claims.service import ClaimService
from loyalty.claims.types import ClaimRecipient
from loyalty.core.config import get_settings
from loyalty.db.models.programs import Program
from loyalty.db.repo.programs_repo import ProgramsRepo

logger = structlog.get_logger(__name__)
MAX_CAMPAIGN_RECIPIENTS = 50_000


class CampaignBudgetGuard:
    @staticmethod
    def evaluate(
        *,
        program: Program,
        estimated_cost_cents: int,
        confirmation: str | None = None,
    ) -> BudgetCheckResult:
        settings = get_settings()
        try:
            result = check_budget(
                budget_cents=program.campaign_budget_cents,
                estimated_cost_cents=estimated_cost_cents,
                confirmation=confirmation,
                override_phrase=settings.campaign_budget_override_phrase,
                near_ratio=settings.campaign_near_budget_ratio,
            )
        except ValueError as exc:
            raise CampaignValidationError(str(exc)) from exc
        except BudgetExceededError as exc:
            logger.warning(
                "campaign_budget_blocked",
                program_id=str(program.id),
                budget_cents=exc.budget_cents,
                estimated_cost_cents=exc.estimated_cost_cents,
                overage_cents=exc.overage_cents,
            )
            raise

        if result.disposition == BudgetDisposition.OVER_BUDGET:
            logger.warning(
                "campaign_budget_override_confirmed",
                program_id=str(program.id),
                overage_cents=result.overage_cents,
            )
        elif result.disposition == BudgetDisposition.NEAR_BUDGET:
            logger.warning(
                "campaign_budget_near_limit",
                program_id=str(program.id),
                utilization_percent=result.utilization_percent,
            )
        return result

    @staticmethod
    async def check(
        session: AsyncSession,
        *,
        program_id: UUID,
        estimated_cost_cents: int,
        confirmation: str | None = None,
    ) -> BudgetCheckResult:
        program = await ProgramsRepo.get_by_id(session, program_id)
        if program is None:
            raise CampaignProgramNotFoundError
        return CampaignBudgetGuard.evaluate(
            program=program,
            estimated_cost_cents=estimated_cost_cents,
            confirmation=confirmation,
        )


class CampaignService:
    @staticmethod
    async def issue_campaign(
        session: AsyncSession,
        *,
        program_id: UUID,
        recipients: Sequence[ClaimRecipient],
        size: str,
        mailing_class: MailingClass = MailingClass.STANDARD_CLASS,
        campaign_name: str | None = None,
        confirmation: str | None = None,
        dry_run: bool = False,
        now_utc: datetime | None = None,
    ) -> CampaignIssueResult:
        """Estimates cost, gates on the budget ceiling, then issues one claim code per recipient."""
        now_utc = now_utc or datetime.now(timezone.utc)
        if not recipients:
            raise CampaignValidationError("recipients must not be empty")
        if len(recipients) > MAX_CAMPAIGN_RECIPIENTS:
            raise CampaignValidationError(f"at most {MAX_CAMPAIGN_RECIPIENTS} recipients per campaign")

        program = await ProgramsRepo.get_by_id(session, program_id)
        if program is None:
            raise CampaignProgramNotFoundError

        estimate = estimate_campaign_cost(
            recipient_count=len(recipients),
            size=size,
            mailing_class=mailing_class,
        )
        budget = CampaignBudgetGuard.evaluate(
            program=program,
            estimated_cost_cents=estimate.total_cost_cents,
            confirmation=confirmation,
        )
        if dry_run:
            return CampaignIssueResult(estimate=estimate, budget=budget)

        issued = await ClaimService.issue_bulk(
            session,
            program=program,
            recipients=recipients,
            campaign_name=campaign_name,
            now_utc=now_utc,
        )
        logger.info(
            "campaign_claims_issued",
            program_id=str(program.id),
            campaign_name=campaign_name,
            recipients=len(recipients),
            total_cost_cents=estimate.total_cost_cents,
            disposition=budget.disposition.value,
        )
        return CampaignIssueResult(estimate=estimate, budget=budget, issued=issued)
