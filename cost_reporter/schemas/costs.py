from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

TWO_PLACES = Decimal("0.01")
DEFAULT_CURRENCY = "USD"


class ReportPeriod(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class RecordType(str, Enum):
    """Cost Explorer RECORD_TYPE dimension values."""

    USAGE = "Usage"
    CREDIT = "Credit"
    TAX = "Tax"
    REFUND = "Refund"
    DISCOUNT = "Discount"


def format_exact(value: Decimal) -> str:
    """Render a Decimal without trailing fractional zeros or exponent notation."""
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def round_money(value: Decimal) -> Decimal:
    """Quantize to cents, half-up, without producing a negative zero."""
    rounded = value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if rounded == 0:
        return abs(rounded)
    return rounded


class _WireModel(BaseModel):
    """Immutable value type serialised with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Money(_WireModel):
    amount: str
    unit: str = DEFAULT_CURRENCY

    @field_validator("amount")
    @classmethod
    def _amount_is_decimal(cls, v: str) -> str:
        try:
            parsed = Decimal(v)
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"amount must be a decimal string, got {v!r}") from exc
        if not parsed.is_finite():
            raise ValueError("amount must be finite")
        return v

    @property
    def value(self) -> Decimal:
        return Decimal(self.amount)

    @classmethod
    def exact(cls, value: Decimal, unit: str = DEFAULT_CURRENCY) -> "Money":
        """Full aggregated precision, trailing zeros trimmed."""
        return cls(amount=format_exact(value), unit=unit)

    @classmethod
    def rounded(cls, value: Decimal, unit: str = DEFAULT_CURRENCY) -> "Money":
        """Report-level total, fixed at two fractional digits."""
        return cls(amount=str(round_money(value)), unit=unit)


class DateRange(_WireModel):
    """Half-open range: start is included, end is not."""

    start: date
    end: date

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("DateRange end must not precede start")
        return self


class DailyCostRecord(_WireModel):
    """One per-day, per-(service, region) amount returned by a billing source."""

    record_date: date = Field(alias="date")
    service: Optional[str] = None
    region: Optional[str] = None
    amount: Decimal
    unit: str = DEFAULT_CURRENCY


class BreakdownItem(_WireModel):
    service: str
    region: str
    record_type: RecordType
    cost: Money


class CostReport(_WireModel):
    period: ReportPeriod
    date_range: DateRange
    total_usage_cost: Money
    total_credits_applied: Money
    total_cost: Money
    usage_breakdown: tuple[BreakdownItem, ...] = Field(default_factory=tuple)
    credits_breakdown: tuple[BreakdownItem, ...] = Field(default_factory=tuple)
    combined_breakdown: tuple[BreakdownItem, ...] = Field(default_factory=tuple)
    generated_at: datetime

    def to_wire(self) -> dict:
        """JSON-ready dict in the webhook/storage wire shape."""
        return self.model_dump(mode="json", by_alias=True)
