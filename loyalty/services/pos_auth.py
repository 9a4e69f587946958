from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.programs import Program
from loyalty.db.repo.pos_api_keys_repo import PosApiKeysRepo
from loyalty.gateway.errors import PosUnauthorizedError, ProgramSuspendedError

logger = structlog.get_logger(__name__)
POS_API_KEY_PREFIX = "pk_live_"
POS_API_KEY_TOKEN_BYTES = 24
PROGRAM_STATUS_SUSPENDED = "SUSPENDED"


@dataclass(frozen=True, slots=True)
class PosCredential:
    api_key_id: int
    program: Program

    @property
    def rate_limit_identity(self) -> str:
        return f"key:{self.api_key_id}"


def generate_pos_api_key() -> str:
    return f"{POS_API_KEY_PREFIX}{secrets.token_hex(POS_API_KEY_TOKEN_BYTES)}"


def hash_pos_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def pos_api_key_prefix(raw_key: str) -> str:
    return raw_key[: len(POS_API_KEY_PREFIX) + 4]


def is_well_formed_pos_api_key(raw_key: str | None) -> bool:
    if not raw_key:
        return False
    candidate = raw_key.strip()
    return candidate.startswith(POS_API_KEY_PREFIX) and len(candidate) > len(POS_API_KEY_PREFIX)


async def authenticate_pos_key(
    session: AsyncSession,
    *,
    raw_key: str | None,
    now_utc: datetime,
) -> PosCredential:
    candidate = (raw_key or "").strip()
    if not is_well_formed_pos_api_key(candidate):
        logger.warning("pos_auth_failed", reason="missing_or_malformed_key")
        raise PosUnauthorizedError

    match = await PosApiKeysRepo.get_active_with_program(session, hash_pos_api_key(candidate))
    if match is None:
        logger.warning(
            "pos_auth_failed",
            reason="unknown_key",
            key_prefix=pos_api_key_prefix(candidate),
        )
        raise PosUnauthorizedError

    api_key, program = match
    if program.status == PROGRAM_STATUS_SUSPENDED:
        logger.warning("pos_auth_failed", reason="program_suspended", program_id=str(program.id))
        raise ProgramSuspendedError

    await PosApiKeysRepo.touch_last_used(session, api_key_id=api_key.id, now_utc=now_utc)
    return PosCredential(api_key_id=api_key.id, program=program)
