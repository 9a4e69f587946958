from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from uuid import uuid4

import pytest

from loyalty.campaigns.errors import BudgetExceededError
from loyalty.campaigns.types import (
    BudgetCheckResult,
    BudgetDisposition,
    CampaignIssueResult,
    CostBreakdown,
    CostEstimate,
    MailingClass,
)
from loyalty.claims.types import ClaimRecipient, ClaimStatus, IssuedClaim
from scripts import claim_campaign_tool

PROGRAM_ID = uuid4()


class _FakeSessionContext:
    async def __aenter__(self) -> object:
        return object()

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        return None


def _write_csv(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_load_recipients_skips_blank_rows(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path / "recipients.csv",
        "first_name,last_name,email\n Ada ,Lovelace,ada@example.com\n,,\nGrace,,\n",
    )

    recipients = claim_campaign_tool._load_recipients_from_csv(csv_path)

    assert recipients == [
        ClaimRecipient(first_name="Ada", last_name="Lovelace", email="ada@example.com"),
        ClaimRecipient(first_name="Grace"),
    ]


def test_load_recipients_requires_columns(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path / "recipients.csv", "name\nAda\n")

    with pytest.raises(ValueError, match="missing columns"):
        claim_campaign_tool._load_recipients_from_csv(csv_path)


def _result(recipient: ClaimRecipient) -> CampaignIssueResult:
    return CampaignIssueResult(
        estimate=CostEstimate(
            recipient_count=1,
            size="6x9",
            mailing_class=MailingClass.STANDARD_CLASS,
            unit_cost_cents=75,
            total_cost_cents=75,
            breakdown=CostBreakdown(printing_cents=38, postage_cents=30, processing_cents=7),
        ),
        budget=BudgetCheckResult(
            disposition=BudgetDisposition.WITHIN_BUDGET,
            budget_cents=10_000,
            estimated_cost_cents=75,
            utilization_percent=0.75,
            overage_cents=0,
        ),
        issued=[
            IssuedClaim(
                code="ABCD234567",
                program_id=PROGRAM_ID,
                status=ClaimStatus.ISSUED,
                claim_url="http://localhost:8000/claim/ABCD234567",
                expires_at=datetime(2027, 1, 1, tzinfo=timezone.utc),
                recipient=recipient,
            )
        ],
    )


def test_main_issues_campaign_and_writes_output(monkeypatch, tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path / "recipients.csv", "first_name,email\nAda,ada@example.com\n")
    output_path = tmp_path / "out" / "claims.csv"
    captured: dict[str, object] = {}

    async def _fake_issue(session, **kwargs):
        captured.update(kwargs)
        return _result(kwargs["recipients"][0])

    monkeypatch.setattr(claim_campaign_tool, "SessionLocal", SimpleNamespace(begin=_FakeSessionContext))
    monkeypatch.setattr(claim_campaign_tool.CampaignService, "issue_campaign", _fake_issue)

    exit_code = claim_campaign_tool.main(
        [
            "--program-id",
            str(PROGRAM_ID),
            "--recipients-csv",
            str(csv_path),
            "--campaign-name",
            "spring-mailer",
            "--output-csv",
            str(output_path),
        ]
    )

    assert exit_code == 0
    assert captured["program_id"] == PROGRAM_ID
    assert captured["campaign_name"] == "spring-mailer"
    assert captured["mailing_class"] == MailingClass.STANDARD_CLASS
    assert captured["dry_run"] is False
    lines = output_path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "code,claim_url,first_name,last_name,email,expires_at"
    assert lines[1].startswith("ABCD234567,http://localhost:8000/claim/ABCD234567,Ada,,ada@example.com,")


def test_main_returns_2_when_budget_exceeded(monkeypatch, tmp_path: Path, capsys) -> None:
    csv_path = _write_csv(tmp_path / "recipients.csv", "first_name,email\nAda,ada@example.com\n")

    async def _fake_issue(session, **kwargs):
        raise BudgetExceededError(budget_cents=50, estimated_cost_cents=75, overage_cents=25)

    monkeypatch.setattr(claim_campaign_tool, "SessionLocal", SimpleNamespace(begin=_FakeSessionContext))
    monkeypatch.setattr(claim_campaign_tool.CampaignService, "issue_campaign", _fake_issue)

    exit_code = claim_campaign_tool.main(
        [
            "--program-id",
            str(PROGRAM_ID),
            "--recipients-csv",
            str(csv_path),
            "--campaign-name",
            "spring-mailer",
        ]
    )

    assert exit_code == 2
    assert "blocked=budget_exceeded" in capsys.readouterr().out
