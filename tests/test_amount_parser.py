"""Tests for localized amount parsing."""

from decimal import Decimal

import pytest

from conti.utils.amount_parser import parse_amount, quantize_amount


@pytest.mark.parametrize(
    "text, expected",
    [
        ("€ 1.234,56", Decimal("1234.56")),
        ("-50,00", Decimal("-50.00")),
        ("1234.56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("1.234.567", Decimal("1234567.00")),
        ("+120,00", Decimal("120.00")),
        ("-€ 50,00", Decimal("-50.00")),
        ("€ -50,00", Decimal("-50.00")),
        ("(123.45)", Decimal("-123.45")),
        ("12,5 EUR", Decimal("12.50")),
        ("  42  ", Decimal("42.00")),
    ],
)
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


def test_parse_amount_quantizes_to_cents():
    assert parse_amount("10,005") == Decimal("10.01")
    assert parse_amount("3.14159") == Decimal("3.14")


@pytest.mark.parametrize("text", ["", "abc", "12a", "1,2,3", "€", "--5"])
def test_parse_amount_invalid(text):
    with pytest.raises(ValueError):
        parse_amount(text)


def test_quantize_amount_rounds_half_up():
    assert quantize_amount(Decimal("0.125")) == Decimal("0.13")
    assert quantize_amount(Decimal("-0.125")) == Decimal("-0.13")


def test_parse_amount_rejects_amounts_too_large_for_cents():
    with pytest.raises(ValueError, match="too many digits"):
        parse_amount("1" * 40)


@pytest.mark.parametrize("value", [Decimal("NaN"), Decimal("Infinity"), Decimal("1e30")])
def test_quantize_amount_rejects_unrepresentable_values(value):
    with pytest.raises(ValueError):
        quantize_amount(value)
