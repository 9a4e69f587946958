from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from loyalty.core.config import get_settings

logger = structlog.get_logger(__name__)
CLAIM_EMAIL_DOMAIN = "claim.local"
DEFAULT_FIRST_NAME = "Guest"


class WalletProvisioningError(Exception):
    pass


@dataclass(frozen=True, slots=True)
class WalletPassRequest:
    wallet_program_id: str
    external_member_id: str
    email: str
    first_name: str
    last_name: str | None
    points: int
    tier: str


def build_claim_pass_request(
    *,
    wallet_program_id: str,
    claim_code: str,
    external_member_id: str,
    email: str | None,
    first_name: str | None,
    last_name: str | None,
    points: int,
    tier: str,
) -> WalletPassRequest:
    return WalletPassRequest(
        wallet_program_id=wallet_program_id,
        external_member_id=external_member_id,
        email=(email or "").strip() or f"{claim_code.lower()}@{CLAIM_EMAIL_DOMAIN}",
        first_name=(first_name or "").strip() or DEFAULT_FIRST_NAME,
        last_name=(last_name or "").strip() or None,
        points=points,
        tier=tier,
    )


def _request_body(request: WalletPassRequest) -> dict[str, Any]:
    return {
        "externalId": request.external_member_id,
        "email": request.email,
        "firstName": request.first_name,
        "lastName": request.last_name,
        "points": request.points,
        "tier": request.tier,
    }


async def provision_wallet_pass(request: WalletPassRequest) -> str:
    """Enrolls the member with the wallet provider and returns the pass install URL."""
    settings = get_settings()
    base_url = settings.wallet_provisioning_base_url.rstrip("/")
    url = f"{base_url}/programs/{request.wallet_program_id}/members"
    headers = {}
    if settings.wallet_provisioning_api_key:
        headers["Authorization"] = f"Bearer {settings.wallet_provisioning_api_key}"

    try:
        async with httpx.AsyncClient(timeout=settings.wallet_provisioning_timeout_seconds) as client:
            response = await client.post(url, json=_request_body(request), headers=headers)
            response.raise_for_status()
            payload = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.exception(
            "wallet_provisioning_failed",
            wallet_program_id=request.wallet_program_id,
            external_member_id=request.external_member_id,
        )
        raise WalletProvisioningError(str(exc)) from exc

    install_url = payload.get("install_url") if isinstance(payload, dict) else None
    if not isinstance(install_url, str) or not install_url.strip():
        logger.error(
            "wallet_provisioning_missing_install_url",
            wallet_program_id=request.wallet_program_id,
            external_member_id=request.external_member_id,
        )
        raise WalletProvisioningError("wallet provider response has no install_url")

    logger.info(
        "wallet_pass_provisioned",
        wallet_program_id=request.wallet_program_id,
        external_member_id=request.external_member_id,
    )
    return install_url.strip()
