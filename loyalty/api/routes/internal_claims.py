from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Query, Request

from loyalty.claims.errors import ClaimIssueError, ClaimNotCancellableError, ClaimNotFoundError
from loyalty.claims.service import ClaimService
from loyalty.claims.types import ClaimRecipient, IssuedClaim
from loyalty.db.repo.programs_repo import ProgramsRepo
from loyalty.db.session import SessionLocal

from .internal_helpers import _assert_internal_access
from .internal_models import (
    ClaimCancelRequest,
    ClaimCancelResponse,
    ClaimIssueRequest,
    ClaimIssueResponse,
    ClaimRecipientRequest,
    ClaimSummaryResponse,
)

router = APIRouter(tags=["internal", "claims"])
logger = structlog.get_logger(__name__)


def _recipient_from_request(payload: ClaimRecipientRequest) -> ClaimRecipient:
    return ClaimRecipient(**payload.model_dump())


def _issued_as_response(issued: IssuedClaim) -> ClaimIssueResponse:
    return ClaimIssueResponse(
        code=issued.code,
        program_id=issued.program_id,
        status=issued.status.value,
        claim_url=issued.claim_url,
        expires_at=issued.expires_at,
    )


@router.post("/internal/programs/{program_id}/claims", response_model=ClaimIssueResponse)
async def issue_claim(
    program_id: UUID,
    payload: ClaimIssueRequest,
    request: Request,
) -> ClaimIssueResponse:
    _assert_internal_access(request)
    now_utc = datetime.now(timezone.utc)

    try:
        async with SessionLocal.begin() as session:
            program = await ProgramsRepo.get_by_id(session, program_id)
            if program is None:
                raise HTTPException(status_code=404, detail={"code": "NOT_FOUND"})
            issued = await ClaimService.issue(
                session,
                program=program,
                recipient=_recipient_from_request(payload.recipient),
                campaign_name=payload.campaign_name,
                ttl_days=payload.ttl_days,
                now_utc=now_utc,
            )
    except ClaimIssueError as exc:
        logger.error("claim_issue_failed", program_id=str(program_id))
        raise HTTPException(status_code=503, detail={"code": "CLAIM_ISSUE_FAILED"}) from exc

    return _issued_as_response(issued)


@router.post("/internal/claims/{code}/cancel", response_model=ClaimCancelResponse)
async def cancel_claim(
    code: str,
    payload: ClaimCancelRequest,
    request: Request,
) -> ClaimCancelResponse:
    _assert_internal_access(request)
    now_utc = datetime.now(timezone.utc)

    try:
        async with SessionLocal.begin() as session:
            claim = await ClaimService.cancel(
                session,
                code=code,
                reason=payload.reason,
                now_utc=now_utc,
            )
            response = ClaimCancelResponse(
                code=claim.code,
                status=claim.status,
                cancelled_at=claim.cancelled_at,
            )
    except ClaimNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "CLAIM_NOT_FOUND"}) from exc
    except ClaimNotCancellableError as exc:
        raise HTTPException(status_code=409, detail={"code": "CLAIM_NOT_CANCELLABLE"}) from exc

    return response


@router.get("/internal/programs/{program_id}/claims/summary", response_model=ClaimSummaryResponse)
async def get_claim_summary(
    program_id: UUID,
    request: Request,
    campaign_name: str | None = Query(default=None, max_length=128),
) -> ClaimSummaryResponse:
    _assert_internal_access(request)

    async with SessionLocal() as session:
        program = await ProgramsRepo.get_by_id(session, program_id)
        if program is None:
            raise HTTPException(status_code=404, detail={"code": "NOT_FOUND"})
        counts = await ClaimService.summary(
            session,
            program_id=program_id,
            campaign_name=campaign_name,
        )

    return ClaimSummaryResponse(
        program_id=program_id,
        campaign_name=campaign_name,
        counts=counts,
        total=sum(counts.values()),
    )
