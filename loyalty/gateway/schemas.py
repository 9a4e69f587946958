from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class _PosOperationBase(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    external_member_id: str = Field(min_length=1, max_length=128)


class EarnOperation(_PosOperationBase):
    action: Literal["EARN"]
    points: int | None = Field(default=None, gt=0, le=10_000_000)
    currency_amount: Decimal | None = Field(
        default=None,
        gt=0,
        max_digits=12,
        decimal_places=2,
    )
    external_reference: str | None = Field(default=None, max_length=128)
    metadata: dict[str, Any] = Field(default_factory=dict)
    email: str | None = Field(default=None, max_length=320)
    first_name: str | None = Field(default=None, max_length=128)
    last_name: str | None = Field(default=None, max_length=128)

    @field_validator("points", mode="before")
    @classmethod
    def _reject_non_integer_points(cls, value: Any) -> Any:
        if isinstance(value, bool) or isinstance(value, float):
            raise ValueError("points must be an integer")
        return value

    @model_validator(mode="after")
    def _exactly_one_amount(self) -> EarnOperation:
        if (self.points is None) == (self.currency_amount is None):
            raise ValueError("exactly one of points or currency_amount is required")
        return self


class RedeemOperation(_PosOperationBase):
    action: Literal["REDEEM"]
    points: int = Field(gt=0, le=10_000_000)
    external_reference: str | None = Field(default=None, max_length=128)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("points", mode="before")
    @classmethod
    def _reject_non_integer_points(cls, value: Any) -> Any:
        if isinstance(value, bool) or isinstance(value, float):
            raise ValueError("points must be an integer")
        return value


class LookupOperation(_PosOperationBase):
    action: Literal["LOOKUP"]


PosOperation = Annotated[
    Union[EarnOperation, RedeemOperation, LookupOperation],
    Field(discriminator="action"),
]
