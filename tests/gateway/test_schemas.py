from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import TypeAdapter, ValidationError

from loyalty.gateway.schemas import EarnOperation, LookupOperation, PosOperation, RedeemOperation

POS_OPERATION = TypeAdapter(PosOperation)


def test_discriminator_selects_operation_type() -> None:
    earn = POS_OPERATION.validate_python(
        {"action": "EARN", "external_member_id": " CUST-1 ", "currency_amount": "12.34"}
    )
    redeem = POS_OPERATION.validate_python({"action": "REDEEM", "external_member_id": "CUST-1", "points": 5})
    lookup = POS_OPERATION.validate_python({"action": "LOOKUP", "external_member_id": "CUST-1"})

    assert isinstance(earn, EarnOperation)
    assert earn.external_member_id == "CUST-1"
    assert earn.currency_amount == Decimal("12.34")
    assert isinstance(redeem, RedeemOperation)
    assert isinstance(lookup, LookupOperation)


@pytest.mark.parametrize(
    "payload",
    [
        {"action": "EARN", "external_member_id": "CUST-1"},
        {"action": "EARN", "external_member_id": "CUST-1", "points": 5, "currency_amount": "1.00"},
        {"action": "EARN", "external_member_id": "CUST-1", "points": 0},
        {"action": "EARN", "external_member_id": "CUST-1", "points": 1.5},
        {"action": "EARN", "external_member_id": "CUST-1", "points": True},
        {"action": "EARN", "external_member_id": "CUST-1", "currency_amount": "1.234"},
        {"action": "EARN", "external_member_id": "CUST-1", "currency_amount": "-3"},
        {"action": "EARN", "external_member_id": "", "points": 5},
        {"action": "REDEEM", "external_member_id": "CUST-1", "points": -1},
        {"action": "REDEEM", "external_member_id": "CUST-1"},
        {"action": "LOOKUP", "external_member_id": "CUST-1", "points": 5},
        {"action": "REFUND", "external_member_id": "CUST-1", "points": 5},
    ],
)
def test_invalid_operations_are_rejected(payload: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        POS_OPERATION.validate_python(payload)
