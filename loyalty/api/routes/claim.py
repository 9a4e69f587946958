from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, HTTPException, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from loyalty.claims.errors import (
    ClaimAlreadyUsedError,
    ClaimError,
    ClaimExpiredError,
    ClaimNotFoundError,
    ClaimProvisioningFailedError,
)
from loyalty.claims.service import ClaimService
from loyalty.db.session import SessionLocal

router = APIRouter(tags=["claim"])
logger = structlog.get_logger(__name__)

CLAIM_ERROR_STATUS: dict[type[ClaimError], int] = {
    ClaimNotFoundError: status.HTTP_404_NOT_FOUND,
    ClaimAlreadyUsedError: status.HTTP_409_CONFLICT,
    ClaimExpiredError: status.HTTP_410_GONE,
    ClaimProvisioningFailedError: status.HTTP_502_BAD_GATEWAY,
}


class ClaimStatusResponse(BaseModel):
    code: str
    status: str
    first_name: str | None = None
    created_at: datetime
    installed_at: datetime | None = None
    expires_at: datetime | None = None


def _claim_http_error(exc: ClaimError) -> HTTPException:
    status_code = CLAIM_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail={"code": exc.code})


def _claim_store_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"code": "TRANSACTION_FAILED", "message": "Claim could not be processed, retry later"},
    )


@router.get("/claim/{code}")
async def redeem_claim(code: str) -> RedirectResponse:
    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            result = await ClaimService.redeem(session, code=code, now_utc=now_utc)
    except ClaimError as exc:
        raise _claim_http_error(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("claim_redeem_store_failed")
        raise _claim_store_unavailable() from exc

    return RedirectResponse(url=result.install_url, status_code=status.HTTP_302_FOUND)


@router.get("/claim/{code}/status", response_model=ClaimStatusResponse)
async def get_claim_status(code: str) -> ClaimStatusResponse:
    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal() as session:
            view = await ClaimService.status(session, code=code, now_utc=now_utc)
    except ClaimError as exc:
        raise _claim_http_error(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("claim_status_store_failed")
        raise _claim_store_unavailable() from exc

    return ClaimStatusResponse(
        code=view.code,
        status=view.status.value,
        first_name=view.first_name,
        created_at=view.created_at,
        installed_at=view.installed_at,
        expires_at=view.expires_at,
    )
