from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.ledger_transactions import LedgerTransaction
from loyalty.db.models.member_ledgers import MemberLedger
from loyalty.db.models.programs import Program
from loyalty.db.repo.ledger_repo import LedgerRepo
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.ledger.errors import (
    InsufficientBalanceError,
    LedgerValidationError,
    MemberInactiveError,
    MemberNotFoundError,
)
from loyalty.ledger.member_models import (
    apply_snapshot_to_model,
    snapshot_from_model,
    thresholds_from_program,
    tier_names_from_program,
)
from loyalty.ledger.rules import (
    apply_adjustment,
    apply_earn,
    apply_redeem,
    can_redeem,
    clamp_adjustment,
)
from loyalty.ledger.tiers import (
    is_upgrade,
    points_for_currency,
    tier_display_name,
    tier_for_spend,
    tier_progress,
)
from loyalty.ledger.types import (
    EntryStatus,
    LedgerAction,
    LedgerEntryView,
    LedgerMutationResult,
    MemberHistory,
    MemberLookupResult,
    MemberProfile,
    MemberSnapshot,
    Tier,
)

logger = structlog.get_logger(__name__)
MEMBER_STATUS_ACTIVE = "ACTIVE"
MEMBER_STATUS_INACTIVE = "INACTIVE"


def _validate_external_id(external_member_id: str) -> str:
    normalized = external_member_id.strip()
    if not normalized:
        raise LedgerValidationError("external_member_id must not be empty")
    return normalized


def _validate_positive_points(points: int) -> None:
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise LedgerValidationError("points must be a positive integer")


class LedgerService:
    @staticmethod
    async def _append_entry(
        session: AsyncSession,
        *,
        member: MemberLedger,
        action: LedgerAction,
        status: EntryStatus,
        amount: int,
        requested_amount: int,
        previous_balance: int,
        spend_delta: int = 0,
        currency_amount: Decimal | None = None,
        multiplier_used: int | None = None,
        reject_reason: str | None = None,
        idempotency_key: str | None = None,
        external_reference: str | None = None,
        metadata: dict[str, object] | None = None,
        now_utc: datetime,
    ) -> LedgerTransaction:
        return await LedgerRepo.append(
            session,
            entry=LedgerTransaction(
                member_ledger_id=member.id,
                program_id=member.program_id,
                action=action.value,
                status=status.value,
                amount=amount,
                requested_amount=requested_amount,
                previous_balance=previous_balance,
                new_balance=previous_balance + amount,
                spend_delta=spend_delta,
                currency_amount=currency_amount,
                multiplier_used=multiplier_used,
                reject_reason=reject_reason,
                idempotency_key=idempotency_key,
                external_reference=external_reference,
                metadata_=metadata or {},
                created_at=now_utc,
            ),
        )

    @staticmethod
    def _mutation_result(
        *,
        member: MemberLedger,
        action: LedgerAction,
        points: int,
        before: MemberSnapshot,
        after: MemberSnapshot,
        is_new_member: bool,
        entry: LedgerTransaction,
    ) -> LedgerMutationResult:
        return LedgerMutationResult(
            member_id=member.id,
            external_member_id=member.external_id,
            action=action,
            points=points,
            previous_balance=before.points_balance,
            new_balance=after.points_balance,
            previous_tier=before.tier,
            new_tier=after.tier,
            tier_upgraded=is_upgrade(before.tier, after.tier),
            cumulative_spend=after.cumulative_spend,
            is_new_member=is_new_member,
            transaction_id=entry.id,
            wallet_pass_url=member.wallet_pass_url,
        )

    @staticmethod
    async def earn(
        session: AsyncSession,
        *,
        program: Program,
        external_member_id: str,
        points: int | None = None,
        currency_amount: Decimal | None = None,
        idempotency_key: str | None = None,
        external_reference: str | None = None,
        metadata: dict[str, object] | None = None,
        profile: MemberProfile | None = None,
        now_utc: datetime | None = None,
    ) -> LedgerMutationResult:
        now_utc = now_utc or datetime.now(timezone.utc)
        external_id = _validate_external_id(external_member_id)

        if (points is None) == (currency_amount is None):
            raise LedgerValidationError("exactly one of points or currency_amount is required")

        multiplier_used: int | None = None
        if currency_amount is not None:
            if currency_amount <= 0:
                raise LedgerValidationError("currency_amount must be positive")
            multiplier_used = program.earn_rate_multiplier
            earned = points_for_currency(currency_amount, multiplier_used)
            if earned <= 0:
                raise LedgerValidationError("purchase amount is too small to earn points")
            spend_delta = earned
        else:
            earned = points if points is not None else 0
            spend_delta = 0
        _validate_positive_points(earned)
        points = earned

        profile = profile or MemberProfile()
        thresholds = thresholds_from_program(program)
        member, is_new_member = await MembersRepo.get_or_create_for_update(
            session,
            program_id=program.id,
            external_id=external_id,
            initial_tier=tier_for_spend(0, thresholds).value,
            now_utc=now_utc,
            email=profile.email,
            first_name=profile.first_name,
            last_name=profile.last_name,
        )
        if member.status != MEMBER_STATUS_ACTIVE:
            raise MemberInactiveError

        before = snapshot_from_model(member)
        after = apply_earn(before, points=points, spend_delta=spend_delta, thresholds=thresholds)
        apply_snapshot_to_model(member, after, now_utc)

        entry = await LedgerService._append_entry(
            session,
            member=member,
            action=LedgerAction.EARN,
            status=EntryStatus.APPLIED,
            amount=points,
            requested_amount=points,
            previous_balance=before.points_balance,
            spend_delta=spend_delta,
            currency_amount=currency_amount,
            multiplier_used=multiplier_used,
            idempotency_key=idempotency_key,
            external_reference=external_reference,
            metadata=metadata,
            now_utc=now_utc,
        )
        result = LedgerService._mutation_result(
            member=member,
            action=LedgerAction.EARN,
            points=points,
            before=before,
            after=after,
            is_new_member=is_new_member,
            entry=entry,
        )
        logger.info(
            "ledger_points_earned",
            program_id=str(program.id),
            member_id=str(member.id),
            points=points,
            spend_delta=spend_delta,
            new_balance=result.new_balance,
            previous_tier=result.previous_tier.value,
            new_tier=result.new_tier.value,
            tier_upgraded=result.tier_upgraded,
            is_new_member=is_new_member,
        )
        return result

    @staticmethod
    async def redeem(
        session: AsyncSession,
        *,
        program: Program,
        external_member_id: str,
        points: int,
        idempotency_key: str | None = None,
        external_reference: str | None = None,
        metadata: dict[str, object] | None = None,
        now_utc: datetime | None = None,
    ) -> LedgerMutationResult:
        """Debits points under the member row lock.

        A redeem above the balance is not an exception: the REJECTED entry is
        appended and returned as a result with ``rejected`` set, so it commits
        with the caller's transaction like any other log entry.
        """
        now_utc = now_utc or datetime.now(timezone.utc)
        external_id = _validate_external_id(external_member_id)
        _validate_positive_points(points)

        member = await MembersRepo.get_by_external_id_for_update(
            session,
            program_id=program.id,
            external_id=external_id,
        )
        if member is None:
            raise MemberNotFoundError
        if member.status != MEMBER_STATUS_ACTIVE:
            raise MemberInactiveError

        before = snapshot_from_model(member)
        if not can_redeem(before, points=points):
            rejected_entry = await LedgerService._append_entry(
                session,
                member=member,
                action=LedgerAction.REDEEM,
                status=EntryStatus.REJECTED,
                amount=0,
                requested_amount=points,
                previous_balance=before.points_balance,
                reject_reason=InsufficientBalanceError.code,
                idempotency_key=idempotency_key,
                external_reference=external_reference,
                metadata=metadata,
                now_utc=now_utc,
            )
            logger.info(
                "ledger_redeem_rejected",
                program_id=str(program.id),
                member_id=str(member.id),
                requested=points,
                current_balance=before.points_balance,
            )
            rejection = LedgerService._mutation_result(
                member=member,
                action=LedgerAction.REDEEM,
                points=0,
                before=before,
                after=before,
                is_new_member=False,
                entry=rejected_entry,
            )
            rejection.status = EntryStatus.REJECTED
            rejection.requested_points = points
            rejection.reject_reason = InsufficientBalanceError.code
            return rejection

        after = apply_redeem(before, points=points)
        apply_snapshot_to_model(member, after, now_utc)
        entry = await LedgerService._append_entry(
            session,
            member=member,
            action=LedgerAction.REDEEM,
            status=EntryStatus.APPLIED,
            amount=-points,
            requested_amount=points,
            previous_balance=before.points_balance,
            idempotency_key=idempotency_key,
            external_reference=external_reference,
            metadata=metadata,
            now_utc=now_utc,
        )
        logger.info(
            "ledger_points_redeemed",
            program_id=str(program.id),
            member_id=str(member.id),
            points=points,
            new_balance=after.points_balance,
        )
        return LedgerService._mutation_result(
            member=member,
            action=LedgerAction.REDEEM,
            points=points,
            before=before,
            after=after,
            is_new_member=False,
            entry=entry,
        )

    @staticmethod
    async def adjust(
        session: AsyncSession,
        *,
        program: Program,
        external_member_id: str,
        delta: int,
        reason: str,
        now_utc: datetime | None = None,
    ) -> LedgerMutationResult:
        now_utc = now_utc or datetime.now(timezone.utc)
        external_id = _validate_external_id(external_member_id)
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise LedgerValidationError("delta must be a non-zero integer")

        member = await MembersRepo.get_by_external_id_for_update(
            session,
            program_id=program.id,
            external_id=external_id,
        )
        if member is None:
            raise MemberNotFoundError

        before = snapshot_from_model(member)
        applied = clamp_adjustment(before, delta=delta)
        after = apply_adjustment(before, delta=delta)
        apply_snapshot_to_model(member, after, now_utc)
        entry = await LedgerService._append_entry(
            session,
            member=member,
            action=LedgerAction.ADJUST,
            status=EntryStatus.APPLIED,
            amount=applied,
            requested_amount=delta,
            previous_balance=before.points_balance,
            metadata={"reason": reason},
            now_utc=now_utc,
        )
        logger.info(
            "ledger_balance_adjusted",
            program_id=str(program.id),
            member_id=str(member.id),
            requested_delta=delta,
            applied_delta=applied,
            new_balance=after.points_balance,
            reason=reason,
        )
        return LedgerService._mutation_result(
            member=member,
            action=LedgerAction.ADJUST,
            points=applied,
            before=before,
            after=after,
            is_new_member=False,
            entry=entry,
        )

    @staticmethod
    async def install_from_claim(
        session: AsyncSession,
        *,
        program: Program,
        external_member_id: str,
        install_url: str,
        claim_code: str,
        profile: MemberProfile | None = None,
        now_utc: datetime | None = None,
    ) -> LedgerMutationResult:
        now_utc = now_utc or datetime.now(timezone.utc)
        external_id = _validate_external_id(external_member_id)
        profile = profile or MemberProfile()
        thresholds = thresholds_from_program(program)

        member, is_new_member = await MembersRepo.get_or_create_for_update(
            session,
            program_id=program.id,
            external_id=external_id,
            initial_tier=tier_for_spend(0, thresholds).value,
            now_utc=now_utc,
            email=profile.email,
            first_name=profile.first_name,
            last_name=profile.last_name,
        )

        bonus = program.enrollment_bonus_points if member.status == MEMBER_STATUS_ACTIVE else 0
        before = snapshot_from_model(member)
        after = (
            apply_earn(before, points=bonus, spend_delta=0, thresholds=thresholds)
            if bonus > 0
            else before
        )
        apply_snapshot_to_model(member, after, now_utc)
        member.wallet_pass_url = install_url

        entry = await LedgerService._append_entry(
            session,
            member=member,
            action=LedgerAction.CLAIM_INSTALL,
            status=EntryStatus.APPLIED,
            amount=bonus,
            requested_amount=bonus,
            previous_balance=before.points_balance,
            external_reference=claim_code,
            metadata={"install_url": install_url},
            now_utc=now_utc,
        )
        return LedgerService._mutation_result(
            member=member,
            action=LedgerAction.CLAIM_INSTALL,
            points=bonus,
            before=before,
            after=after,
            is_new_member=is_new_member,
            entry=entry,
        )

    @staticmethod
    async def lookup(
        session: AsyncSession,
        *,
        program: Program,
        external_member_id: str,
    ) -> MemberLookupResult:
        external_id = _validate_external_id(external_member_id)
        member = await MembersRepo.get_by_external_id(
            session,
            program_id=program.id,
            external_id=external_id,
        )
        if member is None:
            raise MemberNotFoundError

        thresholds = thresholds_from_program(program)
        tier = Tier(member.tier)
        progress = tier_progress(member.cumulative_spend, thresholds)
        return MemberLookupResult(
            member_id=member.id,
            external_member_id=member.external_id,
            points_balance=member.points_balance,
            cumulative_spend=member.cumulative_spend,
            tier=tier,
            tier_name=tier_display_name(tier, tier_names_from_program(program)),
            status=member.status,
            wallet_pass_url=member.wallet_pass_url,
            next_tier=None if progress is None else progress.next_tier,
            spend_to_next_tier=None if progress is None else progress.spend_needed,
            updated_at=member.updated_at,
        )

    @staticmethod
    async def history(
        session: AsyncSession,
        *,
        program: Program,
        external_member_id: str,
        limit: int = 10,
    ) -> MemberHistory:
        """Recent log entries plus the applied total, for operator audits."""
        member = await MembersRepo.get_by_external_id(
            session,
            program_id=program.id,
            external_id=_validate_external_id(external_member_id),
        )
        if member is None:
            raise MemberNotFoundError

        entries = await LedgerRepo.list_for_member(session, member_ledger_id=member.id, limit=limit)
        applied_total = await LedgerRepo.sum_applied_amounts(session, member_ledger_id=member.id)
        history = MemberHistory(
            member_id=member.id,
            external_member_id=member.external_id,
            points_balance=member.points_balance,
            applied_total=applied_total,
            entries=[
                LedgerEntryView(
                    transaction_id=entry.id,
                    action=LedgerAction(entry.action),
                    status=EntryStatus(entry.status),
                    amount=entry.amount,
                    requested_amount=entry.requested_amount,
                    previous_balance=entry.previous_balance,
                    new_balance=entry.new_balance,
                    reject_reason=entry.reject_reason,
                    external_reference=entry.external_reference,
                    created_at=entry.created_at,
                )
                for entry in entries
            ],
        )
        if not history.balance_matches_log:
            logger.error(
                "ledger_balance_log_mismatch",
                program_id=str(program.id),
                member_id=str(member.id),
                points_balance=member.points_balance,
                applied_total=applied_total,
            )
        return history

    @staticmethod
    async def deactivate(
        session: AsyncSession,
        *,
        program: Program,
        external_member_id: str,
        reason: str | None = None,
        now_utc: datetime | None = None,
    ) -> MemberLedger:
        now_utc = now_utc or datetime.now(timezone.utc)
        member = await MembersRepo.get_by_external_id_for_update(
            session,
            program_id=program.id,
            external_id=_validate_external_id(external_member_id),
        )
        if member is None:
            raise MemberNotFoundError
        if member.status == MEMBER_STATUS_INACTIVE:
            return member

        await MembersRepo.set_status(
            session,
            member=member,
            status=MEMBER_STATUS_INACTIVE,
            now_utc=now_utc,
        )
        logger.info(
            "ledger_member_deactivated",
            program_id=str(program.id),
            member_id=str(member.id),
            reason=reason,
        )
        return member
