from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from loyalty.gateway.errors import PosUnauthorizedError, ProgramSuspendedError
from loyalty.services import pos_auth
from loyalty.services.pos_auth import (
    POS_API_KEY_PREFIX,
    authenticate_pos_key,
    generate_pos_api_key,
    hash_pos_api_key,
    is_well_formed_pos_api_key,
)

NOW_UTC = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def test_generated_keys_are_prefixed_and_unique() -> None:
    first = generate_pos_api_key()
    second = generate_pos_api_key()

    assert first.startswith(POS_API_KEY_PREFIX)
    assert first != second
    assert hash_pos_api_key(first) != hash_pos_api_key(second)
    assert len(hash_pos_api_key(first)) == 64


def test_is_well_formed_pos_api_key() -> None:
    assert is_well_formed_pos_api_key("pk_live_abc") is True
    assert is_well_formed_pos_api_key("pk_live_") is False
    assert is_well_formed_pos_api_key("sk_live_abc") is False
    assert is_well_formed_pos_api_key(None) is False


def _patch_lookup(monkeypatch, match: tuple[object, object] | None) -> list[str]:
    touched: list[str] = []

    async def _fake_get_active_with_program(session, key_hash):
        return match

    async def _fake_touch_last_used(session, *, api_key_id, now_utc):
        touched.append(api_key_id)

    monkeypatch.setattr(pos_auth.PosApiKeysRepo, "get_active_with_program", _fake_get_active_with_program)
    monkeypatch.setattr(pos_auth.PosApiKeysRepo, "touch_last_used", _fake_touch_last_used)
    return touched


@pytest.mark.asyncio
async def test_authenticate_pos_key_returns_credential_and_touches_key(monkeypatch) -> None:
    program = SimpleNamespace(id=uuid4(), status="ACTIVE")
    touched = _patch_lookup(monkeypatch, (SimpleNamespace(id=11), program))

    credential = await authenticate_pos_key(object(), raw_key=" pk_live_abc ", now_utc=NOW_UTC)

    assert credential.api_key_id == 11
    assert credential.program is program
    assert credential.rate_limit_identity == "key:11"
    assert touched == [11]


@pytest.mark.asyncio
async def test_authenticate_pos_key_rejects_unknown_key(monkeypatch) -> None:
    _patch_lookup(monkeypatch, None)

    with pytest.raises(PosUnauthorizedError):
        await authenticate_pos_key(object(), raw_key="pk_live_unknown", now_utc=NOW_UTC)


@pytest.mark.asyncio
async def test_authenticate_pos_key_rejects_missing_key_without_lookup(monkeypatch) -> None:
    async def _unexpected(*args, **kwargs):
        raise AssertionError("lookup must not run for a malformed key")

    monkeypatch.setattr(pos_auth.PosApiKeysRepo, "get_active_with_program", _unexpected)

    with pytest.raises(PosUnauthorizedError):
        await authenticate_pos_key(object(), raw_key=None, now_utc=NOW_UTC)


@pytest.mark.asyncio
async def test_authenticate_pos_key_rejects_suspended_program(monkeypatch) -> None:
    program = SimpleNamespace(id=uuid4(), status="SUSPENDED")
    touched = _patch_lookup(monkeypatch, (SimpleNamespace(id=12), program))

    with pytest.raises(ProgramSuspendedError):
        await authenticate_pos_key(object(), raw_key="pk_live_abc", now_utc=NOW_UTC)
    assert touched == []
