from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class Tier(str, Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class LedgerAction(str, Enum):
    EARN = "EARN"
    REDEEM = "REDEEM"
    CLAIM_INSTALL = "CLAIM_INSTALL"
    ADJUST = "ADJUST"


class EntryStatus(str, Enum):
    APPLIED = "APPLIED"
    REJECTED = "REJECTED"


@dataclass(frozen=True, slots=True)
class TierThresholds:
    bronze_max: int = 999
    silver_max: int = 4999
    gold_max: int = 14999


@dataclass(frozen=True, slots=True)
class TierNames:
    bronze: str = "Bronze"
    silver: str = "Silver"
    gold: str = "Gold"
    platinum: str = "Platinum"


@dataclass(slots=True)
class MemberSnapshot:
    points_balance: int
    cumulative_spend: int
    tier: Tier


@dataclass(slots=True)
class TierProgress:
    next_tier: Tier
    spend_needed: int


@dataclass(slots=True)
class MemberProfile:
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


@dataclass(slots=True)
class LedgerMutationResult:
    member_id: UUID
    external_member_id: str
    action: LedgerAction
    points: int
    previous_balance: int
    new_balance: int
    previous_tier: Tier
    new_tier: Tier
    tier_upgraded: bool
    cumulative_spend: int
    is_new_member: bool
    transaction_id: int
    wallet_pass_url: str | None = None
    status: EntryStatus = EntryStatus.APPLIED
    requested_points: int | None = None
    reject_reason: str | None = None

    @property
    def rejected(self) -> bool:
        return self.status == EntryStatus.REJECTED


@dataclass(slots=True)
class MemberLookupResult:
    member_id: UUID
    external_member_id: str
    points_balance: int
    cumulative_spend: int
    tier: Tier
    tier_name: str
    status: str
    wallet_pass_url: str | None
    next_tier: Tier | None
    spend_to_next_tier: int | None
    updated_at: datetime


@dataclass(slots=True)
class LedgerEntryView:
    transaction_id: int
    action: LedgerAction
    status: EntryStatus
    amount: int
    requested_amount: int
    previous_balance: int
    new_balance: int
    reject_reason: str | None
    external_reference: str | None
    created_at: datetime


@dataclass(slots=True)
class MemberHistory:
    member_id: UUID
    external_member_id: str
    points_balance: int
    applied_total: int
    entries: list[LedgerEntryView]

    @property
    def balance_matches_log(self) -> bool:
        return self.applied_total == self.points_balance
