from __future__ import annotations

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient, Headers
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from loyalty.api.routes import pos
from loyalty.db.models.idempotency_records import IdempotencyRecord
from loyalty.db.models.ledger_transactions import LedgerTransaction
from loyalty.db.session import SessionLocal
from loyalty.gateway import service as gateway_service
from loyalty.gateway.rate_limit import RateLimitDecision
from loyalty.main import app
from tests.integration.ledger_fixtures import _create_api_key, _create_program


@pytest.fixture(autouse=True)
def allow_rate_limit(monkeypatch) -> None:
    async def _allow(identity: str) -> RateLimitDecision:
        return RateLimitDecision(allowed=True, limit=100, remaining=99, retry_after_seconds=0)

    monkeypatch.setattr(pos, "check_pos_rate_limit", _allow)


async def _post_transaction(
    api_key: str,
    payload: dict[str, object],
    *,
    idempotency_key: str | None = None,
) -> tuple[int, dict[str, object], Headers]:
    headers = {"X-API-Key": api_key}
    if idempotency_key is not None:
        headers["Idempotency-Key"] = idempotency_key
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as client:
        response = await client.post("/api/v1/pos/transactions", json=payload, headers=headers)
    return response.status_code, response.json(), response.headers


async def _ledger_entry_count() -> int:
    async with SessionLocal() as session:
        return int(await session.scalar(select(func.count()).select_from(LedgerTransaction)) or 0)


@pytest.mark.asyncio
async def test_earn_replay_returns_identical_response_without_new_entry() -> None:
    program = await _create_program()
    api_key = await _create_api_key(program)
    payload = {"action": "EARN", "external_member_id": "CUST-1", "currency_amount": "120.00"}

    first_status, first_body, first_headers = await _post_transaction(
        api_key, payload, idempotency_key="txn-001"
    )
    second_status, second_body, second_headers = await _post_transaction(
        api_key, payload, idempotency_key="txn-001"
    )

    assert first_status == 200
    assert first_body["new_balance"] == 1200
    assert first_body["new_tier"] == "SILVER"
    assert first_body["is_new_member"] is True
    assert "idempotent-replayed" not in first_headers
    assert second_status == 200
    assert second_body == first_body
    assert second_headers["idempotent-replayed"] == "true"
    assert await _ledger_entry_count() == 1


@pytest.mark.asyncio
async def test_key_reused_with_different_payload_is_conflict() -> None:
    program = await _create_program()
    api_key = await _create_api_key(program)

    await _post_transaction(
        api_key,
        {"action": "EARN", "external_member_id": "CUST-1", "points": 10},
        idempotency_key="txn-002",
    )
    status_code, body, _ = await _post_transaction(
        api_key,
        {"action": "EARN", "external_member_id": "CUST-1", "points": 11},
        idempotency_key="txn-002",
    )

    assert status_code == 409
    assert body["detail"]["code"] == "IDEMPOTENCY_CONFLICT"
    assert await _ledger_entry_count() == 1


@pytest.mark.asyncio
async def test_rejected_redeem_is_logged_and_replayed() -> None:
    program = await _create_program()
    api_key = await _create_api_key(program)
    await _post_transaction(api_key, {"action": "EARN", "external_member_id": "CUST-1", "points": 10})

    payload = {"action": "REDEEM", "external_member_id": "CUST-1", "points": 50}
    first_status, first_body, _ = await _post_transaction(api_key, payload, idempotency_key="txn-003")
    second_status, second_body, _ = await _post_transaction(api_key, payload, idempotency_key="txn-003")

    assert first_status == 422
    assert first_body["detail"]["code"] == "INSUFFICIENT_BALANCE"
    assert first_body["detail"]["current_balance"] == 10
    assert (second_status, second_body) == (first_status, first_body)

    async with SessionLocal() as session:
        rejected = (
            await session.execute(
                select(LedgerTransaction).where(LedgerTransaction.status == "REJECTED")
            )
        ).scalars().all()
        record = await session.scalar(
            select(IdempotencyRecord).where(IdempotencyRecord.idempotency_key == "txn-003")
        )

    assert len(rejected) == 1
    assert rejected[0].amount == 0
    assert rejected[0].requested_amount == 50
    assert record is not None
    assert record.response_status == 422


@pytest.mark.asyncio
async def test_programs_are_isolated_by_api_key() -> None:
    program_a = await _create_program(name="Program A")
    program_b = await _create_program(name="Program B")
    key_a = await _create_api_key(program_a)
    key_b = await _create_api_key(program_b)

    await _post_transaction(key_a, {"action": "EARN", "external_member_id": "CUST-1", "points": 40})
    status_code, body, _ = await _post_transaction(
        key_b,
        {"action": "LOOKUP", "external_member_id": "CUST-1"},
    )

    assert status_code == 404
    assert body["detail"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_suspended_program_is_rejected() -> None:
    program = await _create_program(status="SUSPENDED")
    api_key = await _create_api_key(program)

    status_code, body, _ = await _post_transaction(
        api_key,
        {"action": "LOOKUP", "external_member_id": "CUST-1"},
    )

    assert status_code == 403
    assert body["detail"]["code"] == "PROGRAM_SUSPENDED"


@pytest.mark.asyncio
async def test_concurrent_requests_with_same_key_apply_once() -> None:
    program = await _create_program()
    api_key = await _create_api_key(program)
    payload = {"action": "EARN", "external_member_id": "CUST-1", "points": 75}
    start = asyncio.Event()

    async def _send() -> tuple[int, dict[str, object], Headers]:
        await start.wait()
        return await _post_transaction(api_key, payload, idempotency_key="txn-race")

    tasks = [asyncio.create_task(_send()), asyncio.create_task(_send())]
    start.set()
    results = await asyncio.gather(*tasks)

    assert [status_code for status_code, _, _ in results] == [200, 200]
    assert results[0][1] == results[1][1]
    assert results[0][1]["new_balance"] == 75
    assert sorted("idempotent-replayed" in headers for _, _, headers in results) == [False, True]
    assert await _ledger_entry_count() == 1


@pytest.mark.asyncio
async def test_store_failure_is_not_cached_and_retry_succeeds(monkeypatch) -> None:
    program = await _create_program()
    api_key = await _create_api_key(program)
    payload = {"action": "EARN", "external_member_id": "CUST-1", "points": 30}
    real_earn = gateway_service.LedgerService.earn
    calls: list[int] = []

    async def _earn_failing_once(session, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise OperationalError("INSERT INTO ledger_transactions", {}, Exception("connection reset"))
        return await real_earn(session, **kwargs)

    monkeypatch.setattr(gateway_service.LedgerService, "earn", _earn_failing_once)

    first_status, first_body, _ = await _post_transaction(api_key, payload, idempotency_key="txn-retry")

    assert first_status == 503
    assert first_body["detail"]["code"] == "TRANSACTION_FAILED"
    assert await _ledger_entry_count() == 0
    async with SessionLocal() as session:
        record = await session.scalar(
            select(IdempotencyRecord).where(IdempotencyRecord.idempotency_key == "txn-retry")
        )
    assert record is None

    second_status, second_body, second_headers = await _post_transaction(
        api_key, payload, idempotency_key="txn-retry"
    )

    assert second_status == 200
    assert second_body["new_balance"] == 30
    assert "idempotent-replayed" not in second_headers
    assert await _ledger_entry_count() == 1
