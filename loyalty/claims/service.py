from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta, timezone
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.claims.codes import build_claim_url, generate_claim_code, normalize_claim_code
from loyalty.claims.errors import (
    ClaimAlreadyUsedError,
    ClaimExpiredError,
    ClaimIssueError,
    ClaimNotCancellableError,
    ClaimNotFoundError,
    ClaimProvisioningFailedError,
)
from loyalty.claims.types import (
    ClaimRecipient,
    ClaimRedeemResult,
    ClaimStatus,
    ClaimStatusView,
    IssuedClaim,
)
from loyalty.core.config import get_settings
from loyalty.db.models.claim_codes import ClaimCode
from loyalty.db.models.programs import Program
from loyalty.db.repo.claim_codes_repo import ClaimCodesRepo
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.db.repo.programs_repo import ProgramsRepo
from loyalty.ledger.service import LedgerService
from loyalty.ledger.types import MemberProfile, Tier
from loyalty.services.wallet_provisioning import (
    WalletPassRequest,
    WalletProvisioningError,
    build_claim_pass_request,
    provision_wallet_pass,
)

logger = structlog.get_logger(__name__)
MAX_ISSUE_ATTEMPTS = 5
CLAIM_MEMBER_ID_PREFIX = "CLAIM-"

WalletProvisioner = Callable[[WalletPassRequest], Awaitable[str]]


def _is_expired(claim: ClaimCode, now_utc: datetime) -> bool:
    return claim.expires_at is not None and claim.expires_at <= now_utc


def effective_claim_status(claim: ClaimCode, now_utc: datetime) -> ClaimStatus:
    status = ClaimStatus(claim.status)
    if status == ClaimStatus.ISSUED and _is_expired(claim, now_utc):
        return ClaimStatus.EXPIRED
    return status


def claim_member_external_id(claim: ClaimCode) -> str:
    return claim.external_member_id or f"{CLAIM_MEMBER_ID_PREFIX}{claim.code}"


class ClaimService:
    @staticmethod
    async def issue(
        session: AsyncSession,
        *,
        program: Program,
        recipient: ClaimRecipient,
        campaign_name: str | None = None,
        ttl_days: int | None = None,
        now_utc: datetime | None = None,
    ) -> IssuedClaim:
        now_utc = now_utc or datetime.now(timezone.utc)
        settings = get_settings()
        ttl_days = settings.claim_code_ttl_days if ttl_days is None else ttl_days
        expires_at = now_utc + timedelta(days=ttl_days) if ttl_days > 0 else None

        for _ in range(MAX_ISSUE_ATTEMPTS):
            code = generate_claim_code(settings.claim_code_length)
            inserted_id = await ClaimCodesRepo.insert_if_code_free(
                session,
                values={
                    "code": code,
                    "program_id": program.id,
                    "status": ClaimStatus.ISSUED.value,
                    "first_name": recipient.first_name,
                    "last_name": recipient.last_name,
                    "email": recipient.email,
                    "external_member_id": recipient.external_member_id,
                    "address_line1": recipient.address_line1,
                    "address_city": recipient.address_city,
                    "address_state": recipient.address_state,
                    "address_postal_code": recipient.address_postal_code,
                    "campaign_name": campaign_name,
                    "expires_at": expires_at,
                    "created_at": now_utc,
                    "updated_at": now_utc,
                },
            )
            if inserted_id is not None:
                break
            logger.warning("claim_code_collision", program_id=str(program.id))
        else:
            raise ClaimIssueError

        return IssuedClaim(
            code=code,
            program_id=program.id,
            status=ClaimStatus.ISSUED,
            claim_url=build_claim_url(base_url=settings.claim_base_url, code=code),
            expires_at=expires_at,
            recipient=recipient,
        )

    @staticmethod
    async def issue_bulk(
        session: AsyncSession,
        *,
        program: Program,
        recipients: Sequence[ClaimRecipient],
        campaign_name: str | None = None,
        ttl_days: int | None = None,
        now_utc: datetime | None = None,
    ) -> list[IssuedClaim]:
        now_utc = now_utc or datetime.now(timezone.utc)
        issued = [
            await ClaimService.issue(
                session,
                program=program,
                recipient=recipient,
                campaign_name=campaign_name,
                ttl_days=ttl_days,
                now_utc=now_utc,
            )
            for recipient in recipients
        ]
        logger.info(
            "claim_codes_issued",
            program_id=str(program.id),
            campaign_name=campaign_name,
            issued_count=len(issued),
        )
        return issued

    @staticmethod
    async def redeem(
        session: AsyncSession,
        *,
        code: str,
        provisioner: WalletProvisioner = provision_wallet_pass,
        now_utc: datetime | None = None,
    ) -> ClaimRedeemResult:
        """Installs a claim code exactly once.

        The code row stays locked while the wallet provider is called, so a
        concurrent redeem of the same code waits and then sees INSTALLED. Any
        failure propagates and the caller's transaction leaves the code ISSUED.
        """
        now_utc = now_utc or datetime.now(timezone.utc)
        normalized_code = normalize_claim_code(code)
        if not normalized_code:
            raise ClaimNotFoundError

        claim = await ClaimCodesRepo.get_by_code_for_update(session, normalized_code)
        if claim is None:
            logger.info("claim_redeem_rejected", reason="not_found")
            raise ClaimNotFoundError

        status = effective_claim_status(claim, now_utc)
        if status == ClaimStatus.INSTALLED:
            logger.info("claim_redeem_rejected", claim_code_id=claim.id, reason="already_used")
            raise ClaimAlreadyUsedError
        if status in {ClaimStatus.EXPIRED, ClaimStatus.CANCELLED}:
            logger.info("claim_redeem_rejected", claim_code_id=claim.id, reason=status.value.lower())
            raise ClaimExpiredError

        program = await ProgramsRepo.get_by_id(session, claim.program_id)
        if program is None or not program.wallet_program_id:
            logger.error(
                "claim_wallet_program_missing",
                claim_code_id=claim.id,
                program_id=str(claim.program_id),
            )
            raise ClaimProvisioningFailedError

        external_member_id = claim_member_external_id(claim)
        existing_member = await MembersRepo.get_by_external_id(
            session,
            program_id=program.id,
            external_id=external_member_id,
        )
        pass_request = build_claim_pass_request(
            wallet_program_id=program.wallet_program_id,
            claim_code=claim.code,
            external_member_id=external_member_id,
            email=claim.email,
            first_name=claim.first_name,
            last_name=claim.last_name,
            points=(
                existing_member.points_balance
                if existing_member is not None
                else program.enrollment_bonus_points
            ),
            tier=existing_member.tier if existing_member is not None else Tier.BRONZE.value,
        )

        try:
            install_url = await provisioner(pass_request)
        except WalletProvisioningError as exc:
            logger.warning("claim_redeem_provisioning_failed", claim_code_id=claim.id)
            raise ClaimProvisioningFailedError from exc

        ledger_result = await LedgerService.install_from_claim(
            session,
            program=program,
            external_member_id=external_member_id,
            install_url=install_url,
            claim_code=claim.code,
            profile=MemberProfile(
                email=claim.email,
                first_name=claim.first_name,
                last_name=claim.last_name,
            ),
            now_utc=now_utc,
        )

        claim.status = ClaimStatus.INSTALLED.value
        claim.install_url = install_url
        claim.installed_at = now_utc
        claim.member_ledger_id = ledger_result.member_id
        claim.updated_at = now_utc
        await session.flush()

        logger.info(
            "claim_redeemed",
            claim_code_id=claim.id,
            program_id=str(program.id),
            member_id=str(ledger_result.member_id),
            is_new_member=ledger_result.is_new_member,
        )
        return ClaimRedeemResult(
            code=claim.code,
            install_url=install_url,
            member_id=ledger_result.member_id,
            external_member_id=external_member_id,
            is_new_member=ledger_result.is_new_member,
            installed_at=now_utc,
        )

    @staticmethod
    async def cancel(
        session: AsyncSession,
        *,
        code: str,
        reason: str | None = None,
        now_utc: datetime | None = None,
    ) -> ClaimCode:
        now_utc = now_utc or datetime.now(timezone.utc)
        claim = await ClaimCodesRepo.get_by_code_for_update(session, normalize_claim_code(code))
        if claim is None:
            raise ClaimNotFoundError

        status = effective_claim_status(claim, now_utc)
        if status == ClaimStatus.CANCELLED:
            return claim
        if status != ClaimStatus.ISSUED:
            raise ClaimNotCancellableError

        claim.status = ClaimStatus.CANCELLED.value
        claim.cancel_reason = reason
        claim.cancelled_at = now_utc
        claim.updated_at = now_utc
        await session.flush()
        logger.info("claim_cancelled", claim_code_id=claim.id, reason=reason)
        return claim

    @staticmethod
    async def status(
        session: AsyncSession,
        *,
        code: str,
        now_utc: datetime | None = None,
    ) -> ClaimStatusView:
        now_utc = now_utc or datetime.now(timezone.utc)
        normalized_code = normalize_claim_code(code)
        claim = await ClaimCodesRepo.get_by_code(session, normalized_code) if normalized_code else None
        if claim is None:
            raise ClaimNotFoundError

        return ClaimStatusView(
            code=claim.code,
            status=effective_claim_status(claim, now_utc),
            first_name=claim.first_name,
            created_at=claim.created_at,
            installed_at=claim.installed_at,
            expires_at=claim.expires_at,
        )

    @staticmethod
    async def summary(
        session: AsyncSession,
        *,
        program_id: UUID,
        campaign_name: str | None = None,
    ) -> dict[str, int]:
        counts = await ClaimCodesRepo.count_by_status(
            session,
            program_id=program_id,
            campaign_name=campaign_name,
        )
        return {status.value: counts.get(status.value, 0) for status in ClaimStatus}

    @staticmethod
    async def expire_overdue(session: AsyncSession, *, now_utc: datetime | None = None) -> int:
        now_utc = now_utc or datetime.now(timezone.utc)
        return await ClaimCodesRepo.expire_overdue(session, now_utc=now_utc)
