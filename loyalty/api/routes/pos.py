from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated

import structlog
from fastapi import APIRouter, Body, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from loyalty.db.session import SessionLocal
from loyalty.gateway.errors import (
    IdempotencyConflictError,
    IdempotencyInFlightError,
    PosUnauthorizedError,
    ProgramSuspendedError,
)
from loyalty.gateway.rate_limit import check_pos_rate_limit
from loyalty.gateway.schemas import PosOperation
from loyalty.gateway.service import TransactionGateway, ledger_error_outcome, lookup_body
from loyalty.ledger.errors import LedgerError
from loyalty.ledger.service import LedgerService
from loyalty.services.pos_auth import PosCredential, authenticate_pos_key

router = APIRouter(prefix="/api/v1/pos", tags=["pos"])
logger = structlog.get_logger(__name__)
IDEMPOTENT_REPLAY_HEADER = "Idempotent-Replayed"


def _transaction_failed() -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={
            "code": "TRANSACTION_FAILED",
            "message": "Transaction could not be completed, retry with the same Idempotency-Key",
        },
    )


async def require_pos_credential(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> PosCredential:
    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            credential = await authenticate_pos_key(session, raw_key=x_api_key, now_utc=now_utc)
    except PosUnauthorizedError as exc:
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHORIZED", "message": "Missing or invalid API key"},
        ) from exc
    except ProgramSuspendedError as exc:
        raise HTTPException(
            status_code=403,
            detail={"code": "PROGRAM_SUSPENDED", "message": "Program is suspended"},
        ) from exc
    except SQLAlchemyError as exc:
        logger.exception("pos_auth_store_unavailable")
        raise _transaction_failed() from exc

    decision = await check_pos_rate_limit(credential.rate_limit_identity)
    if not decision.allowed:
        logger.warning(
            "pos_rate_limited",
            program_id=str(credential.program.id),
            api_key_id=credential.api_key_id,
            limit=decision.limit,
        )
        raise HTTPException(
            status_code=429,
            detail={
                "code": "RATE_LIMITED",
                "message": "Too many requests",
                "retry_after_seconds": decision.retry_after_seconds,
            },
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )

    structlog.contextvars.bind_contextvars(
        program_id=str(credential.program.id),
        api_key_id=credential.api_key_id,
    )
    return credential


@router.post("/transactions")
async def post_transaction(
    operation: Annotated[PosOperation, Body()],
    credential: Annotated[PosCredential, Depends(require_pos_credential)],
    idempotency_key: Annotated[
        str | None,
        Header(alias="Idempotency-Key", min_length=1, max_length=128),
    ] = None,
) -> JSONResponse:
    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            outcome = await TransactionGateway.process(
                session,
                credential=credential,
                operation=operation,
                idempotency_key=idempotency_key,
                now_utc=now_utc,
            )
    except IdempotencyConflictError as exc:
        raise HTTPException(
            status_code=409,
            detail={
                "code": "IDEMPOTENCY_CONFLICT",
                "message": "Idempotency-Key was already used for a different request",
            },
        ) from exc
    except (IdempotencyInFlightError, SQLAlchemyError) as exc:
        logger.exception(
            "pos_transaction_failed",
            action=operation.action,
            has_idempotency_key=idempotency_key is not None,
        )
        raise _transaction_failed() from exc

    headers = {IDEMPOTENT_REPLAY_HEADER: "true"} if outcome.replayed else None
    return JSONResponse(status_code=outcome.status_code, content=outcome.body, headers=headers)


@router.get("/members/{external_id}")
async def get_member(
    external_id: str,
    credential: Annotated[PosCredential, Depends(require_pos_credential)],
) -> JSONResponse:
    try:
        async with SessionLocal() as session:
            snapshot = await LedgerService.lookup(
                session,
                program=credential.program,
                external_member_id=external_id,
            )
    except LedgerError as exc:
        outcome = ledger_error_outcome(exc)
        return JSONResponse(status_code=outcome.status_code, content=outcome.body)
    except SQLAlchemyError as exc:
        logger.exception("pos_member_lookup_failed")
        raise _transaction_failed() from exc

    return JSONResponse(status_code=200, content=lookup_body(snapshot))
