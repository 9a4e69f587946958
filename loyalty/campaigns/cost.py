from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from loyalty.campaigns.types import CostBreakdown, CostEstimate, MailingClass

UNIT_PRICE_CENTS_BY_SIZE: dict[str, int] = {
    "4x6": 55,
    "6x4": 55,
    "6x9": 75,
    "9x6": 75,
    "6x11": 95,
    "11x6": 95,
    "us_letter": 120,
    "us_legal": 130,
    "a4": 120,
}
DEFAULT_UNIT_PRICE_CENTS = 75
FIRST_CLASS_MULTIPLIER = Decimal("1.5")
PRINTING_CENTS = 25
POSTAGE_CENTS = 40
PROCESSING_CENTS = 10


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _class_multiplier(mailing_class: MailingClass) -> Decimal:
    if mailing_class == MailingClass.FIRST_CLASS:
        return FIRST_CLASS_MULTIPLIER
    return Decimal("1")


def unit_cost_cents(size: str, mailing_class: MailingClass) -> int:
    base = UNIT_PRICE_CENTS_BY_SIZE.get(size.strip().lower(), DEFAULT_UNIT_PRICE_CENTS)
    return _round_cents(Decimal(base) * _class_multiplier(mailing_class))


def estimate_campaign_cost(
    *,
    recipient_count: int,
    size: str,
    mailing_class: MailingClass = MailingClass.STANDARD_CLASS,
) -> CostEstimate:
    if recipient_count < 0:
        raise ValueError("recipient_count must be non-negative")

    unit_cost = unit_cost_cents(size, mailing_class)
    return CostEstimate(
        recipient_count=recipient_count,
        size=size,
        mailing_class=mailing_class,
        unit_cost_cents=unit_cost,
        total_cost_cents=unit_cost * recipient_count,
        breakdown=CostBreakdown(
            printing_cents=PRINTING_CENTS,
            postage_cents=_round_cents(Decimal(POSTAGE_CENTS) * _class_multiplier(mailing_class)),
            processing_cents=PROCESSING_CENTS,
        ),
    )
