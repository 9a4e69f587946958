from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from loyalty.gateway import idempotency
from loyalty.gateway.errors import IdempotencyConflictError, IdempotencyInFlightError
from loyalty.gateway.idempotency import IdempotencyStore, request_fingerprint

NOW_UTC = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
FINGERPRINT = request_fingerprint({"action": "EARN", "external_member_id": "CUST-1", "points": 5})


def _record(**overrides: object) -> SimpleNamespace:
    values: dict[str, object] = {
        "request_fingerprint": FINGERPRINT,
        "status": "PENDING",
        "response_status": None,
        "response_body": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _patch_repo(monkeypatch, *, lookups: list[object], inserted: bool = True) -> dict[str, int]:
    calls = {"get": 0, "create": 0}

    async def _fake_get_for_update(session, *, program_id, idempotency_key):
        calls["get"] += 1
        return lookups.pop(0)

    async def _fake_create_pending(session, **kwargs):
        calls["create"] += 1
        return inserted

    monkeypatch.setattr(idempotency.IdempotencyRepo, "get_for_update", _fake_get_for_update)
    monkeypatch.setattr(idempotency.IdempotencyRepo, "create_pending", _fake_create_pending)
    return calls


async def _reserve():
    return await IdempotencyStore.reserve(
        object(),
        program_id=uuid4(),
        idempotency_key="txn-001",
        fingerprint=FINGERPRINT,
        now_utc=NOW_UTC,
    )


def test_request_fingerprint_ignores_key_order() -> None:
    assert request_fingerprint({"a": 1, "b": "x"}) == request_fingerprint({"b": "x", "a": 1})
    assert request_fingerprint({"a": 1}) != request_fingerprint({"a": 2})


@pytest.mark.asyncio
async def test_reserve_fresh_key_inserts_pending_record(monkeypatch) -> None:
    record = _record()
    calls = _patch_repo(monkeypatch, lookups=[None, record])

    reservation = await _reserve()

    assert reservation.is_replay is False
    assert reservation.record is record
    assert calls == {"get": 2, "create": 1}


@pytest.mark.asyncio
async def test_reserve_completed_key_returns_cached_response(monkeypatch) -> None:
    body = {"new_balance": 50}
    calls = _patch_repo(
        monkeypatch,
        lookups=[_record(status="COMPLETED", response_status=200, response_body=body)],
    )

    reservation = await _reserve()

    assert reservation.is_replay is True
    assert reservation.replay_status == 200
    assert reservation.replay_body == body
    assert calls["create"] == 0


@pytest.mark.asyncio
async def test_reserve_cached_error_response_is_replayed(monkeypatch) -> None:
    body = {"detail": {"code": "INSUFFICIENT_BALANCE"}}
    _patch_repo(
        monkeypatch,
        lookups=[_record(status="COMPLETED", response_status=422, response_body=body)],
    )

    reservation = await _reserve()

    assert reservation.replay_status == 422
    assert reservation.replay_body == body


@pytest.mark.asyncio
async def test_reserve_rejects_key_reused_with_different_payload(monkeypatch) -> None:
    _patch_repo(
        monkeypatch,
        lookups=[_record(request_fingerprint="other", status="COMPLETED", response_status=200)],
    )

    with pytest.raises(IdempotencyConflictError):
        await _reserve()


@pytest.mark.asyncio
async def test_reserve_lost_insert_race_replays_winner(monkeypatch) -> None:
    winner = _record(status="COMPLETED", response_status=200, response_body={"ok": True})
    _patch_repo(monkeypatch, lookups=[None, winner], inserted=False)

    reservation = await _reserve()

    assert reservation.is_replay is True
    assert reservation.replay_body == {"ok": True}


@pytest.mark.asyncio
async def test_reserve_pending_record_is_in_flight(monkeypatch) -> None:
    _patch_repo(monkeypatch, lookups=[_record()])

    with pytest.raises(IdempotencyInFlightError):
        await _reserve()
