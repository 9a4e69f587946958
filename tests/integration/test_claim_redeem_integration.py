from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import pytest

from loyalty.claims.errors import ClaimAlreadyUsedError, ClaimExpiredError, ClaimProvisioningFailedError
from loyalty.claims.service import ClaimService
from loyalty.claims.types import ClaimRecipient, ClaimStatus
from loyalty.db.session import SessionLocal
from loyalty.ledger.service import LedgerService
from loyalty.services.wallet_provisioning import WalletPassRequest, WalletProvisioningError
from tests.integration.ledger_fixtures import UTC, _create_program


async def _issue(program, *, ttl_days: int | None = None, now_utc: datetime | None = None) -> str:
    async with SessionLocal.begin() as session:
        issued = await ClaimService.issue(
            session,
            program=program,
            recipient=ClaimRecipient(first_name="Ada", email="ada@example.com"),
            campaign_name="integration",
            ttl_days=ttl_days,
            now_utc=now_utc,
        )
    return issued.code


@pytest.mark.asyncio
async def test_concurrent_redeem_installs_code_once() -> None:
    program = await _create_program(enrollment_bonus_points=100)
    code = await _issue(program)
    provision_calls: list[WalletPassRequest] = []
    start = asyncio.Event()
    outcomes: list[str] = []

    async def _provisioner(request: WalletPassRequest) -> str:
        provision_calls.append(request)
        return f"https://pass.example/{request.external_member_id}"

    async def _redeem() -> None:
        await start.wait()
        try:
            async with SessionLocal.begin() as session:
                await ClaimService.redeem(session, code=code.lower(), provisioner=_provisioner)
            outcomes.append("installed")
        except ClaimAlreadyUsedError:
            outcomes.append("already_used")

    tasks = [asyncio.create_task(_redeem()), asyncio.create_task(_redeem())]
    start.set()
    await asyncio.gather(*tasks)

    assert sorted(outcomes) == ["already_used", "installed"]
    assert len(provision_calls) == 1

    async with SessionLocal() as session:
        view = await ClaimService.status(session, code=code)
        snapshot = await LedgerService.lookup(
            session,
            program=program,
            external_member_id=provision_calls[0].external_member_id,
        )

    assert view.status == ClaimStatus.INSTALLED
    assert snapshot.points_balance == 100
    assert snapshot.wallet_pass_url == f"https://pass.example/{provision_calls[0].external_member_id}"


@pytest.mark.asyncio
async def test_provisioning_failure_leaves_code_redeemable() -> None:
    program = await _create_program()
    code = await _issue(program)

    async def _failing(request: WalletPassRequest) -> str:
        raise WalletProvisioningError("provider down")

    with pytest.raises(ClaimProvisioningFailedError):
        async with SessionLocal.begin() as session:
            await ClaimService.redeem(session, code=code, provisioner=_failing)

    async with SessionLocal() as session:
        view = await ClaimService.status(session, code=code)
    assert view.status == ClaimStatus.ISSUED


@pytest.mark.asyncio
async def test_expired_code_is_rejected_and_swept() -> None:
    program = await _create_program()
    issued_at = datetime.now(UTC) - timedelta(days=3)
    code = await _issue(program, ttl_days=1, now_utc=issued_at)

    async def _provisioner(request: WalletPassRequest) -> str:
        raise AssertionError("expired codes must not be provisioned")

    with pytest.raises(ClaimExpiredError):
        async with SessionLocal.begin() as session:
            await ClaimService.redeem(session, code=code, provisioner=_provisioner)

    async with SessionLocal.begin() as session:
        expired_count = await ClaimService.expire_overdue(session)

    assert expired_count == 1
