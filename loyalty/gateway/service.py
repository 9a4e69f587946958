from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.programs import Program
from loyalty.gateway.idempotency import IdempotencyStore, request_fingerprint
from loyalty.gateway.schemas import EarnOperation, LookupOperation, RedeemOperation
from loyalty.ledger.errors import InsufficientBalanceError, LedgerError
from loyalty.ledger.member_models import tier_names_from_program
from loyalty.ledger.service import LedgerService
from loyalty.ledger.tiers import tier_display_name
from loyalty.ledger.types import LedgerMutationResult, MemberLookupResult, MemberProfile
from loyalty.services.pos_auth import PosCredential

logger = structlog.get_logger(__name__)

LEDGER_ERROR_STATUS: dict[str, int] = {
    "VALIDATION_ERROR": 422,
    "NOT_FOUND": 404,
    "MEMBER_INACTIVE": 409,
    "INSUFFICIENT_BALANCE": 422,
}
LEDGER_ERROR_MESSAGES: dict[str, str] = {
    "VALIDATION_ERROR": "Request is not valid for this program",
    "NOT_FOUND": "Member not found",
    "MEMBER_INACTIVE": "Member is inactive",
    "INSUFFICIENT_BALANCE": "Insufficient points balance",
}
CURRENCY_QUANTUM = Decimal("0.01")


def operation_fingerprint(operation: EarnOperation | RedeemOperation | LookupOperation) -> str:
    payload = operation.model_dump(mode="json")
    if isinstance(operation, EarnOperation) and operation.currency_amount is not None:
        payload["currency_amount"] = str(operation.currency_amount.quantize(CURRENCY_QUANTUM))
    return request_fingerprint(payload)


@dataclass(slots=True)
class GatewayOutcome:
    status_code: int
    body: dict[str, object]
    replayed: bool = False


def error_body(code: str, message: str, **extra: object) -> dict[str, object]:
    return {"detail": {"code": code, "message": message, **extra}}


def mutation_body(result: LedgerMutationResult, program: Program) -> dict[str, object]:
    return {
        "member_id": str(result.member_id),
        "external_member_id": result.external_member_id,
        "action": result.action.value,
        "points": result.points,
        "previous_balance": result.previous_balance,
        "new_balance": result.new_balance,
        "previous_tier": result.previous_tier.value,
        "new_tier": result.new_tier.value,
        "tier_name": tier_display_name(result.new_tier, tier_names_from_program(program)),
        "tier_upgraded": result.tier_upgraded,
        "cumulative_spend": result.cumulative_spend,
        "is_new_member": result.is_new_member,
        "wallet_pass_url": result.wallet_pass_url,
        "transaction_id": result.transaction_id,
    }


def lookup_body(result: MemberLookupResult) -> dict[str, object]:
    return {
        "member_id": str(result.member_id),
        "external_member_id": result.external_member_id,
        "points_balance": result.points_balance,
        "cumulative_spend": result.cumulative_spend,
        "tier": result.tier.value,
        "tier_name": result.tier_name,
        "status": result.status,
        "wallet_pass_url": result.wallet_pass_url,
        "next_tier": None if result.next_tier is None else result.next_tier.value,
        "spend_to_next_tier": result.spend_to_next_tier,
        "updated_at": result.updated_at.isoformat(),
    }


def ledger_error_outcome(exc: LedgerError) -> GatewayOutcome:
    status_code = LEDGER_ERROR_STATUS.get(exc.code, 422)
    message = getattr(exc, "message", None) or LEDGER_ERROR_MESSAGES.get(exc.code, exc.code)
    if isinstance(exc, InsufficientBalanceError):
        return GatewayOutcome(
            status_code=status_code,
            body=error_body(
                exc.code,
                message,
                current_balance=exc.current_balance,
                requested=exc.requested,
            ),
        )
    return GatewayOutcome(status_code=status_code, body=error_body(exc.code, message))


class TransactionGateway:
    @staticmethod
    async def _execute(
        session: AsyncSession,
        *,
        program: Program,
        operation: EarnOperation | RedeemOperation | LookupOperation,
        idempotency_key: str | None,
        now_utc: datetime,
    ) -> GatewayOutcome:
        try:
            if isinstance(operation, EarnOperation):
                result = await LedgerService.earn(
                    session,
                    program=program,
                    external_member_id=operation.external_member_id,
                    points=operation.points,
                    currency_amount=operation.currency_amount,
                    idempotency_key=idempotency_key,
                    external_reference=operation.external_reference,
                    metadata=operation.metadata,
                    profile=MemberProfile(
                        email=operation.email,
                        first_name=operation.first_name,
                        last_name=operation.last_name,
                    ),
                    now_utc=now_utc,
                )
                return GatewayOutcome(status_code=200, body=mutation_body(result, program))

            if isinstance(operation, RedeemOperation):
                result = await LedgerService.redeem(
                    session,
                    program=program,
                    external_member_id=operation.external_member_id,
                    points=operation.points,
                    idempotency_key=idempotency_key,
                    external_reference=operation.external_reference,
                    metadata=operation.metadata,
                    now_utc=now_utc,
                )
                if result.rejected:
                    return ledger_error_outcome(
                        InsufficientBalanceError(
                            current_balance=result.previous_balance,
                            requested=result.requested_points or operation.points,
                        )
                    )
                return GatewayOutcome(status_code=200, body=mutation_body(result, program))

            snapshot = await LedgerService.lookup(
                session,
                program=program,
                external_member_id=operation.external_member_id,
            )
            return GatewayOutcome(status_code=200, body=lookup_body(snapshot))
        except LedgerError as exc:
            return ledger_error_outcome(exc)

    @staticmethod
    async def process(
        session: AsyncSession,
        *,
        credential: PosCredential,
        operation: EarnOperation | RedeemOperation | LookupOperation,
        idempotency_key: str | None = None,
        now_utc: datetime | None = None,
    ) -> GatewayOutcome:
        """Runs one POS operation with replay protection.

        Deterministic outcomes, errors included, are stored under the idempotency
        key in the caller's transaction. Infrastructure failures propagate so the
        transaction rolls back and nothing is cached.
        """
        now_utc = now_utc or datetime.now(timezone.utc)
        program = credential.program

        if idempotency_key is None or isinstance(operation, LookupOperation):
            outcome = await TransactionGateway._execute(
                session,
                program=program,
                operation=operation,
                idempotency_key=None,
                now_utc=now_utc,
            )
        else:
            reservation = await IdempotencyStore.reserve(
                session,
                program_id=program.id,
                idempotency_key=idempotency_key,
                fingerprint=operation_fingerprint(operation),
                now_utc=now_utc,
            )
            if reservation.is_replay:
                return GatewayOutcome(
                    status_code=reservation.replay_status or 200,
                    body=reservation.replay_body or {},
                    replayed=True,
                )

            outcome = await TransactionGateway._execute(
                session,
                program=program,
                operation=operation,
                idempotency_key=idempotency_key,
                now_utc=now_utc,
            )
            await IdempotencyStore.complete(
                session,
                reservation=reservation,
                status_code=outcome.status_code,
                body=outcome.body,
                now_utc=now_utc,
            )

        logger.info(
            "pos_transaction_processed",
            program_id=str(program.id),
            api_key_id=credential.api_key_id,
            action=operation.action,
            status_code=outcome.status_code,
            has_idempotency_key=idempotency_key is not None,
        )
        return outcome
