from __future__ import annotations

import argparse
import asyncio
import csv
from pathlib import Path
from uuid import UUID

from loyalty.campaigns.errors import BudgetExceededError
from loyalty.campaigns.service import CampaignService
from loyalty.campaigns.types import CampaignIssueResult, MailingClass
from loyalty.claims.types import ClaimRecipient
from loyalty.db.session import SessionLocal

RECIPIENT_COLUMNS = (
    "first_name",
    "last_name",
    "email",
    "external_member_id",
    "address_line1",
    "address_city",
    "address_state",
    "address_postal_code",
)


def _clean(value: str | None) -> str | None:
    stripped = (value or "").strip()
    return stripped or None


def _load_recipients_from_csv(path: Path) -> list[ClaimRecipient]:
    recipients: list[ClaimRecipient] = []
    with path.open("r", encoding="utf-8", newline="") as file:
        reader = csv.DictReader(file)
        missing = {"first_name", "email"} - set(reader.fieldnames or [])
        if missing:
            raise ValueError(f"recipients csv is missing columns: {', '.join(sorted(missing))}")
        for row in reader:
            values = {column: _clean(row.get(column)) for column in RECIPIENT_COLUMNS}
            if not any(values.values()):
                continue
            recipients.append(ClaimRecipient(**values))
    return recipients


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Claim code campaign issue tool")
    parser.add_argument("--program-id", type=UUID, required=True)
    parser.add_argument("--recipients-csv", type=Path, required=True)
    parser.add_argument("--campaign-name", required=True)
    parser.add_argument("--size", default="6x9")
    parser.add_argument(
        "--mailing-class",
        choices=tuple(item.value for item in MailingClass),
        default=MailingClass.STANDARD_CLASS.value,
    )
    parser.add_argument("--confirm", help="override phrase required when the campaign is over budget")
    parser.add_argument("--output-csv", type=Path)
    parser.add_argument("--dry-run", action="store_true")
    return parser.parse_args(argv)


def _write_output(path: Path, result: CampaignIssueResult) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as file:
        writer = csv.writer(file)
        writer.writerow(["code", "claim_url", "first_name", "last_name", "email", "expires_at"])
        for item in result.issued:
            writer.writerow(
                [
                    item.code,
                    item.claim_url,
                    item.recipient.first_name or "",
                    item.recipient.last_name or "",
                    item.recipient.email or "",
                    item.expires_at.isoformat() if item.expires_at is not None else "",
                ]
            )


async def _run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    recipients = _load_recipients_from_csv(args.recipients_csv)
    if not recipients:
        raise ValueError("no recipients to process")

    try:
        async with SessionLocal.begin() as session:
            result = await CampaignService.issue_campaign(
                session,
                program_id=args.program_id,
                recipients=recipients,
                size=args.size,
                mailing_class=MailingClass(args.mailing_class),
                campaign_name=args.campaign_name,
                confirmation=args.confirm,
                dry_run=args.dry_run,
            )
    except BudgetExceededError as exc:
        print(  # noqa: T201
            f"blocked=budget_exceeded budget_cents={exc.budget_cents} "
            f"estimated_cost_cents={exc.estimated_cost_cents} overage_cents={exc.overage_cents}"
        )
        return 2

    estimate = result.estimate
    print(  # noqa: T201
        f"recipients={estimate.recipient_count} unit_cost_cents={estimate.unit_cost_cents} "
        f"total_cost_cents={estimate.total_cost_cents} "
        f"disposition={result.budget.disposition.value}"
    )
    if args.dry_run:
        return 0

    output_csv = args.output_csv or Path("reports/claim_campaign_output.csv")
    _write_output(output_csv, result)
    print(f"issued={len(result.issued)} output={output_csv}")  # noqa: T201
    return 0


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_run(argv))


if __name__ == "__main__":
    raise SystemExit(main())
