from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class ClaimStatus(str, Enum):
    ISSUED = "ISSUED"
    INSTALLED = "INSTALLED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


TERMINAL_CLAIM_STATUSES = frozenset(
    {ClaimStatus.INSTALLED, ClaimStatus.EXPIRED, ClaimStatus.CANCELLED}
)


@dataclass(slots=True)
class ClaimRecipient:
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    external_member_id: str | None = None
    address_line1: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    address_postal_code: str | None = None


@dataclass(slots=True)
class IssuedClaim:
    code: str
    program_id: UUID
    status: ClaimStatus
    claim_url: str
    expires_at: datetime | None
    recipient: ClaimRecipient


@dataclass(slots=True)
class ClaimRedeemResult:
    code: str
    install_url: str
    member_id: UUID
    external_member_id: str
    is_new_member: bool
    installed_at: datetime


@dataclass(slots=True)
class ClaimStatusView:
    code: str
    status: ClaimStatus
    first_name: str | None
    created_at: datetime
    installed_at: datetime | None
    expires_at: datetime | None
