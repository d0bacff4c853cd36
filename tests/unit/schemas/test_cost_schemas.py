from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from cost_reporter.schemas.costs import (
    BreakdownItem,
    DailyCostRecord,
    DateRange,
    Money,
    RecordType,
    format_exact,
    round_money,
)


@pytest.mark.parametrize(
    "value,expected",
    [
        (Decimal("15.00"), "15"),
        (Decimal("0.0001234"), "0.0001234"),
        (Decimal("1E+2"), "100"),
        (Decimal("-2.50"), "-2.5"),
        (Decimal("0.000"), "0"),
        (Decimal("-0"), "0"),
    ],
)
def test_format_exact(value, expected):
    assert format_exact(value) == expected


@pytest.mark.parametrize(
    "value,expected",
    [
        (Decimal("0.125"), Decimal("0.13")),
        (Decimal("0.124"), Decimal("0.12")),
        (Decimal("-0.125"), Decimal("-0.13")),
        (Decimal("-0.001"), Decimal("0.00")),
        (Decimal("16"), Decimal("16.00")),
    ],
)
def test_round_money_is_half_up_without_negative_zero(value, expected):
    rounded = round_money(value)
    assert rounded == expected
    assert str(rounded) == str(expected)


def test_money_constructors():
    assert Money.exact(Decimal("10.500")).amount == "10.5"
    assert Money.rounded(Decimal("10.5")).amount == "10.50"
    assert Money.rounded(Decimal("1"), unit="EUR").unit == "EUR"
    assert Money(amount="3.14").value == Decimal("3.14")


@pytest.mark.parametrize("amount", ["abc", "NaN", "Infinity", ""])
def test_money_rejects_non_finite_or_garbage(amount):
    with pytest.raises(ValidationError):
        Money(amount=amount)


def test_date_range_rejects_reversed_bounds():
    with pytest.raises(ValidationError):
        DateRange(start=date(2026, 10, 2), end=date(2026, 10, 1))


def test_date_range_allows_empty_window():
    window = DateRange(start=date(2026, 10, 1), end=date(2026, 10, 1))
    assert window.start == window.end


def test_daily_record_accepts_wire_alias():
    record = DailyCostRecord.model_validate(
        {"date": "2026-10-01", "service": "EC2", "amount": "1.5"}
    )
    assert record.record_date == date(2026, 10, 1)
    assert record.region is None
    assert record.amount == Decimal("1.5")
    assert record.unit == "USD"


def test_breakdown_item_serialises_camel_case():
    item = BreakdownItem(
        service="EC2",
        region="us-east-1",
        record_type=RecordType.CREDIT,
        cost=Money.exact(Decimal("-2")),
    )
    assert item.model_dump(mode="json", by_alias=True) == {
        "service": "EC2",
        "region": "us-east-1",
        "recordType": "Credit",
        "cost": {"amount": "-2", "unit": "USD"},
    }
