"""Tests for price text parsing."""

from decimal import Decimal

import pytest

from gold_price_bot.ingest.base import PriceParseError
from gold_price_bot.ingest.price_parser import parse_price, require_positive_price


@pytest.mark.parametrize(
    "text,expected",
    [
        ("$2,050.10", Decimal("2050.10")),
        ("2048.75", Decimal("2048.75")),
        ("¥ 1,234.5", Decimal("1234.5")),
        ("€ 1 999.00", Decimal("1999.00")),
        ("£12", Decimal("12")),
        ("2048.75USD", Decimal("2048.75")),
        ("  3301.2\n", Decimal("3301.2")),
    ],
)
def test_parse_price_strips_symbols_and_separators(text, expected):
    assert parse_price(text) == expected


@pytest.mark.parametrize("text", ["abc", "", None, "--", "USD"])
def test_parse_price_without_number_is_zero(text):
    assert parse_price(text) == Decimal(0)


def test_require_positive_price_accepts_positive():
    assert require_positive_price("$2,050.10") == Decimal("2050.10")


@pytest.mark.parametrize("text", ["0", "0.00", "-5", "n/a"])
def test_require_positive_price_rejects_non_positive(text):
    with pytest.raises(PriceParseError) as exc_info:
        require_positive_price(text)

    assert exc_info.value.text == text
    assert exc_info.value.value <= 0
