from __future__ import annotations

import pytest

from loyalty.campaigns.cost import DEFAULT_UNIT_PRICE_CENTS, estimate_campaign_cost, unit_cost_cents
from loyalty.campaigns.types import MailingClass


@pytest.mark.parametrize(
    ("size", "standard", "first_class"),
    [
        ("4x6", 55, 83),
        ("6x9", 75, 113),
        ("11x6", 95, 143),
        ("us_letter", 120, 180),
        ("us_legal", 130, 195),
        ("A4", 120, 180),
    ],
)
def test_unit_cost_by_size_and_class(size: str, standard: int, first_class: int) -> None:
    assert unit_cost_cents(size, MailingClass.STANDARD_CLASS) == standard
    assert unit_cost_cents(size, MailingClass.FIRST_CLASS) == first_class


def test_unknown_size_falls_back_to_default_price() -> None:
    assert unit_cost_cents("poster", MailingClass.STANDARD_CLASS) == DEFAULT_UNIT_PRICE_CENTS


def test_estimate_campaign_cost_totals_and_breakdown() -> None:
    estimate = estimate_campaign_cost(
        recipient_count=400,
        size="6x9",
        mailing_class=MailingClass.FIRST_CLASS,
    )

    assert estimate.unit_cost_cents == 113
    assert estimate.total_cost_cents == 45_200
    assert estimate.breakdown.printing_cents == 25
    assert estimate.breakdown.postage_cents == 60
    assert estimate.breakdown.processing_cents == 10


def test_estimate_rejects_negative_recipient_count() -> None:
    with pytest.raises(ValueError):
        estimate_campaign_cost(recipient_count=-1, size="6x9")
