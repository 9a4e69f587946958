from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ClaimRecipientRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    first_name: str | None = Field(default=None, max_length=128)
    last_name: str | None = Field(default=None, max_length=128)
    email: str | None = Field(default=None, max_length=320)
    external_member_id: str | None = Field(default=None, min_length=1, max_length=128)
    address_line1: str | None = Field(default=None, max_length=256)
    address_city: str | None = Field(default=None, max_length=128)
    address_state: str | None = Field(default=None, max_length=64)
    address_postal_code: str | None = Field(default=None, max_length=32)


class ClaimIssueRequest(BaseModel):
    recipient: ClaimRecipientRequest = Field(default_factory=ClaimRecipientRequest)
    campaign_name: str | None = Field(default=None, max_length=128)
    ttl_days: int | None = Field(default=None, ge=0, le=3650)


class ClaimIssueResponse(BaseModel):
    code: str
    program_id: UUID
    status: str
    claim_url: str
    expires_at: datetime | None = None


class ClaimCancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=256)


class ClaimCancelResponse(BaseModel):
    code: str
    status: str
    cancelled_at: datetime | None = None


class MemberAdjustRequest(BaseModel):
    delta: int = Field(ge=-10_000_000, le=10_000_000)
    reason: str = Field(min_length=1, max_length=256)


class MemberAdjustResponse(BaseModel):
    member_id: UUID
    external_member_id: str
    requested_delta: int
    applied_delta: int
    previous_balance: int
    new_balance: int
    tier: str
    transaction_id: int


class MemberDeactivateRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=256)


class MemberDeactivateResponse(BaseModel):
    member_id: UUID
    external_member_id: str
    status: str


class BudgetCheckRequest(BaseModel):
    estimated_cost_cents: int | None = Field(default=None, ge=0)
    recipient_count: int | None = Field(default=None, ge=0, le=50_000)
    size: str = Field(default="6x9", min_length=1, max_length=32)
    mailing_class: Literal["standard_class", "first_class"] = "standard_class"
    confirmation: str | None = Field(default=None, max_length=64)


class CostBreakdownResponse(BaseModel):
    printing_cents: int
    postage_cents: int
    processing_cents: int


class CostEstimateResponse(BaseModel):
    recipient_count: int
    size: str
    mailing_class: str
    unit_cost_cents: int
    total_cost_cents: int
    breakdown: CostBreakdownResponse


class BudgetCheckResponse(BaseModel):
    disposition: str
    budget_cents: int
    estimated_cost_cents: int
    utilization_percent: float | None = None
    overage_cents: int
    override_confirmed: bool
    requires_warning: bool
    estimate: CostEstimateResponse | None = None


class CampaignIssueRequest(BaseModel):
    recipients: list[ClaimRecipientRequest] = Field(min_length=1, max_length=50_000)
    size: str = Field(default="6x9", min_length=1, max_length=32)
    mailing_class: Literal["standard_class", "first_class"] = "standard_class"
    campaign_name: str | None = Field(default=None, max_length=128)
    confirmation: str | None = Field(default=None, max_length=64)
    dry_run: bool = False


class CampaignIssueResponse(BaseModel):
    estimate: CostEstimateResponse
    budget: BudgetCheckResponse
    issued_count: int
    claims: list[ClaimIssueResponse]


class ClaimSummaryResponse(BaseModel):
    program_id: UUID
    campaign_name: str | None = None
    counts: dict[str, int]
    total: int


class LedgerEntryResponse(BaseModel):
    transaction_id: int
    action: str
    status: str
    amount: int
    requested_amount: int
    previous_balance: int
    new_balance: int
    reject_reason: str | None = None
    external_reference: str | None = None
    created_at: datetime


class MemberHistoryResponse(BaseModel):
    member_id: UUID
    external_member_id: str
    points_balance: int
    applied_total: int
    balance_matches_log: bool
    entries: list[LedgerEntryResponse]
