from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, HTTPException, Request

from loyalty.campaigns.cost import estimate_campaign_cost
from loyalty.campaigns.errors import (
    BudgetExceededError,
    CampaignProgramNotFoundError,
    CampaignValidationError,
)
from loyalty.campaigns.service import CampaignBudgetGuard, CampaignService
from loyalty.campaigns.types import BudgetCheckResult, CostEstimate, MailingClass
from loyalty.claims.errors import ClaimIssueError
from loyalty.claims.types import ClaimRecipient
from loyalty.db.session import SessionLocal

from .internal_claims import _issued_as_response
from .internal_helpers import _assert_internal_access
from .internal_models import (
    BudgetCheckRequest,
    BudgetCheckResponse,
    CampaignIssueRequest,
    CampaignIssueResponse,
    CostBreakdownResponse,
    CostEstimateResponse,
)

router = APIRouter(tags=["internal", "campaigns"])


def _estimate_as_response(estimate: CostEstimate) -> CostEstimateResponse:
    return CostEstimateResponse(
        recipient_count=estimate.recipient_count,
        size=estimate.size,
        mailing_class=estimate.mailing_class.value,
        unit_cost_cents=estimate.unit_cost_cents,
        total_cost_cents=estimate.total_cost_cents,
        breakdown=CostBreakdownResponse(
            printing_cents=estimate.breakdown.printing_cents,
            postage_cents=estimate.breakdown.postage_cents,
            processing_cents=estimate.breakdown.processing_cents,
        ),
    )


def _budget_as_response(
    result: BudgetCheckResult,
    *,
    estimate: CostEstimate | None = None,
) -> BudgetCheckResponse:
    return BudgetCheckResponse(
        disposition=result.disposition.value,
        budget_cents=result.budget_cents,
        estimated_cost_cents=result.estimated_cost_cents,
        utilization_percent=result.utilization_percent,
        overage_cents=result.overage_cents,
        override_confirmed=result.override_confirmed,
        requires_warning=result.requires_warning,
        estimate=None if estimate is None else _estimate_as_response(estimate),
    )


def _budget_exceeded(exc: BudgetExceededError) -> HTTPException:
    return HTTPException(
        status_code=402,
        detail={
            "code": "BUDGET_EXCEEDED",
            "budget_cents": exc.budget_cents,
            "estimated_cost_cents": exc.estimated_cost_cents,
            "overage_cents": exc.overage_cents,
        },
    )


@router.post(
    "/internal/programs/{program_id}/campaigns/budget-check",
    response_model=BudgetCheckResponse,
)
async def check_campaign_budget(
    program_id: UUID,
    payload: BudgetCheckRequest,
    request: Request,
) -> BudgetCheckResponse:
    _assert_internal_access(request)

    estimate: CostEstimate | None = None
    if payload.estimated_cost_cents is not None:
        estimated_cost_cents = payload.estimated_cost_cents
    elif payload.recipient_count is not None:
        estimate = estimate_campaign_cost(
            recipient_count=payload.recipient_count,
            size=payload.size,
            mailing_class=MailingClass(payload.mailing_class),
        )
        estimated_cost_cents = estimate.total_cost_cents
    else:
        raise HTTPException(
            status_code=422,
            detail={
                "code": "VALIDATION_ERROR",
                "message": "estimated_cost_cents or recipient_count is required",
            },
        )

    try:
        async with SessionLocal() as session:
            result = await CampaignBudgetGuard.check(
                session,
                program_id=program_id,
                estimated_cost_cents=estimated_cost_cents,
                confirmation=payload.confirmation,
            )
    except CampaignProgramNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND"}) from exc
    except CampaignValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": "VALIDATION_ERROR", "message": str(exc)},
        ) from exc
    except BudgetExceededError as exc:
        raise _budget_exceeded(exc) from exc

    return _budget_as_response(result, estimate=estimate)


@router.post(
    "/internal/programs/{program_id}/campaigns/issue",
    response_model=CampaignIssueResponse,
)
async def issue_campaign(
    program_id: UUID,
    payload: CampaignIssueRequest,
    request: Request,
) -> CampaignIssueResponse:
    _assert_internal_access(request)
    now_utc = datetime.now(timezone.utc)

    try:
        async with SessionLocal.begin() as session:
            result = await CampaignService.issue_campaign(
                session,
                program_id=program_id,
                recipients=[ClaimRecipient(**item.model_dump()) for item in payload.recipients],
                size=payload.size,
                mailing_class=MailingClass(payload.mailing_class),
                campaign_name=payload.campaign_name,
                confirmation=payload.confirmation,
                dry_run=payload.dry_run,
                now_utc=now_utc,
            )
    except CampaignProgramNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND"}) from exc
    except CampaignValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": "VALIDATION_ERROR", "message": str(exc)},
        ) from exc
    except BudgetExceededError as exc:
        raise _budget_exceeded(exc) from exc
    except ClaimIssueError as exc:
        raise HTTPException(status_code=503, detail={"code": "CLAIM_ISSUE_FAILED"}) from exc

    return CampaignIssueResponse(
        estimate=_estimate_as_response(result.estimate),
        budget=_budget_as_response(result.budget),
        issued_count=len(result.issued),
        claims=[_issued_as_response(item) for item in result.issued],
    )
