from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.programs import Program
from loyalty.db.repo.programs_repo import ProgramsRepo
from loyalty.db.session import SessionLocal
from loyalty.ledger.errors import LedgerValidationError, MemberNotFoundError
from loyalty.ledger.service import LedgerService

from .internal_helpers import _assert_internal_access
from .internal_models import (
    LedgerEntryResponse,
    MemberAdjustRequest,
    MemberAdjustResponse,
    MemberDeactivateRequest,
    MemberDeactivateResponse,
    MemberHistoryResponse,
)

router = APIRouter(tags=["internal", "members"])


async def _get_program_or_404(session: AsyncSession, program_id: UUID) -> Program:
    program = await ProgramsRepo.get_by_id(session, program_id)
    if program is None:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND"})
    return program


@router.post(
    "/internal/programs/{program_id}/members/{external_id}/adjust",
    response_model=MemberAdjustResponse,
)
async def adjust_member_balance(
    program_id: UUID,
    external_id: str,
    payload: MemberAdjustRequest,
    request: Request,
) -> MemberAdjustResponse:
    _assert_internal_access(request)
    now_utc = datetime.now(timezone.utc)

    try:
        async with SessionLocal.begin() as session:
            program = await _get_program_or_404(session, program_id)
            result = await LedgerService.adjust(
                session,
                program=program,
                external_member_id=external_id,
                delta=payload.delta,
                reason=payload.reason,
                now_utc=now_utc,
            )
    except MemberNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND"}) from exc
    except LedgerValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": "VALIDATION_ERROR", "message": exc.message},
        ) from exc

    return MemberAdjustResponse(
        member_id=result.member_id,
        external_member_id=result.external_member_id,
        requested_delta=payload.delta,
        applied_delta=result.points,
        previous_balance=result.previous_balance,
        new_balance=result.new_balance,
        tier=result.new_tier.value,
        transaction_id=result.transaction_id,
    )


@router.post(
    "/internal/programs/{program_id}/members/{external_id}/deactivate",
    response_model=MemberDeactivateResponse,
)
async def deactivate_member(
    program_id: UUID,
    external_id: str,
    payload: MemberDeactivateRequest,
    request: Request,
) -> MemberDeactivateResponse:
    _assert_internal_access(request)
    now_utc = datetime.now(timezone.utc)

    try:
        async with SessionLocal.begin() as session:
            program = await _get_program_or_404(session, program_id)
            member = await LedgerService.deactivate(
                session,
                program=program,
                external_member_id=external_id,
                reason=payload.reason,
                now_utc=now_utc,
            )
            response = MemberDeactivateResponse(
                member_id=member.id,
                external_member_id=member.external_id,
                status=member.status,
            )
    except MemberNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND"}) from exc
    except LedgerValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": "VALIDATION_ERROR", "message": exc.message},
        ) from exc

    return response


@router.get(
    "/internal/programs/{program_id}/members/{external_id}/transactions",
    response_model=MemberHistoryResponse,
)
async def get_member_transactions(
    program_id: UUID,
    external_id: str,
    request: Request,
    limit: int = Query(default=10, ge=1, le=200),
) -> MemberHistoryResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal() as session:
            program = await _get_program_or_404(session, program_id)
            history = await LedgerService.history(
                session,
                program=program,
                external_member_id=external_id,
                limit=limit,
            )
    except MemberNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND"}) from exc

    return MemberHistoryResponse(
        member_id=history.member_id,
        external_member_id=history.external_member_id,
        points_balance=history.points_balance,
        applied_total=history.applied_total,
        balance_matches_log=history.balance_matches_log,
        entries=[
            LedgerEntryResponse(
                transaction_id=entry.transaction_id,
                action=entry.action.value,
                status=entry.status.value,
                amount=entry.amount,
                requested_amount=entry.requested_amount,
                previous_balance=entry.previous_balance,
                new_balance=entry.new_balance,
                reject_reason=entry.reject_reason,
                external_reference=entry.external_reference,
                created_at=entry.created_at,
            )
            for entry in history.entries
        ],
    )
