from decimal import Decimal

import pytest

from hrops.core.money import format_amount, normalize_currency, parse_amount


@pytest.mark.parametrize("raw, expected", [
    ("£100.00", (Decimal("100.00"), "GBP")),
    ("$1,250.50", (Decimal("1250.50"), "USD")),
    ("€9.5", (Decimal("9.50"), "EUR")),
    ("100.00 EUR", (Decimal("100.00"), "EUR")),
    ("250", (Decimal("250.00"), None)),
    (42, (Decimal("42.00"), None)),
    (19.999, (Decimal("20.00"), None)),
    (Decimal("0.005"), (Decimal("0.01"), None)),
])
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "1,25", "£-5", "12.345", "£10 USD", True, "1" * 30, 10 ** 30])
def test_parse_amount_rejects(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


def test_negative_amount_rejected():
    with pytest.raises(ValueError, match="negative"):
        parse_amount(Decimal("-1"))


def test_amount_beyond_column_precision_rejected():
    assert parse_amount("9999999999.99")[0] == Decimal("9999999999.99")
    with pytest.raises(ValueError, match="too large"):
        parse_amount("10000000000")


def test_format_amount():
    assert format_amount(Decimal("1250"), "GBP") == "£1,250.00"
    assert format_amount(Decimal("100"), "CHF") == "100.00 CHF"
    assert format_amount(Decimal("7.1"), None) == "7.10"
    assert format_amount(None, "GBP") is None


def test_normalize_currency():
    assert normalize_currency(" usd ") == "USD"
    with pytest.raises(ValueError):
        normalize_currency("US")
