from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from loyalty.api.routes import claim
from loyalty.claims.errors import ClaimAlreadyUsedError, ClaimExpiredError, ClaimNotFoundError
from loyalty.claims.types import ClaimRedeemResult, ClaimStatus, ClaimStatusView
from loyalty.main import app

NOW_UTC = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


class _FakeSessionContext:
    async def __aenter__(self) -> object:
        return object()

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        return None


class _FakeSessionFactory:
    def __call__(self) -> _FakeSessionContext:
        return _FakeSessionContext()

    def begin(self) -> _FakeSessionContext:
        return _FakeSessionContext()


def test_claim_redirects_to_install_url(monkeypatch) -> None:
    async def _fake_redeem(session, *, code, now_utc):
        return ClaimRedeemResult(
            code=code,
            install_url="https://pass.example/p/1",
            member_id=uuid4(),
            external_member_id=f"claim-{code}",
            is_new_member=True,
            installed_at=NOW_UTC,
        )

    monkeypatch.setattr(claim, "SessionLocal", _FakeSessionFactory())
    monkeypatch.setattr(claim.ClaimService, "redeem", _fake_redeem)

    client = TestClient(app, follow_redirects=False)
    response = client.get("/claim/ABCD234567")

    assert response.status_code == 302
    assert response.headers["location"] == "https://pass.example/p/1"


def test_claim_errors_map_to_statuses(monkeypatch) -> None:
    errors = {
        "NOPE000000": ClaimNotFoundError(),
        "USED000000": ClaimAlreadyUsedError(),
        "OLD0000000": ClaimExpiredError(),
    }

    async def _fake_redeem(session, *, code, now_utc):
        raise errors[code]

    monkeypatch.setattr(claim, "SessionLocal", _FakeSessionFactory())
    monkeypatch.setattr(claim.ClaimService, "redeem", _fake_redeem)

    client = TestClient(app, follow_redirects=False)
    statuses = {code: client.get(f"/claim/{code}").status_code for code in errors}

    assert statuses == {"NOPE000000": 404, "USED000000": 409, "OLD0000000": 410}


def test_claim_status_returns_view(monkeypatch) -> None:
    async def _fake_status(session, *, code, now_utc):
        return ClaimStatusView(
            code=code,
            status=ClaimStatus.EXPIRED,
            first_name="Ada",
            created_at=NOW_UTC,
            installed_at=None,
            expires_at=NOW_UTC,
        )

    monkeypatch.setattr(claim, "SessionLocal", _FakeSessionFactory())
    monkeypatch.setattr(claim.ClaimService, "status", _fake_status)

    client = TestClient(app)
    response = client.get("/claim/ABCD234567/status")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "EXPIRED"
    assert payload["first_name"] == "Ada"
    assert payload["installed_at"] is None


def test_claim_store_failure_returns_coded_503(monkeypatch) -> None:
    async def _failing_redeem(session, *, code, now_utc):
        raise OperationalError("SELECT 1", {}, Exception("connection reset"))

    monkeypatch.setattr(claim, "SessionLocal", _FakeSessionFactory())
    monkeypatch.setattr(claim.ClaimService, "redeem", _failing_redeem)

    client = TestClient(app, follow_redirects=False)
    response = client.get("/claim/ABCD234567")

    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "TRANSACTION_FAILED"
