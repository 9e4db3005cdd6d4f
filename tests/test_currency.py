import pytest

from currency import (
    currency_name,
    currency_options,
    currency_symbol,
    format_currency,
    format_currency_compact,
    format_currency_number,
    get_formatter,
    parse_amount,
)
from errors import ValidationFailed


def test_format_currency_by_locale():
    assert format_currency(123456, "USD") == "$1,234.56"
    assert format_currency(150000, "AED") == "AED 1,500.00"
    assert format_currency(123456, "EUR") == "1.234,56 €"
    assert format_currency(12345678900, "INR") == "₹12,34,56,789.00"


def test_format_currency_negative_and_unknown_code():
    assert format_currency(-500, "USD") == "-$5.00"
    assert format_currency(100, "XYZ") == "XYZ 1.00"


def test_compact_and_plain_number():
    assert format_currency_compact(150000, "USD") == "$1.5K"
    assert format_currency_compact(250000000, "USD") == "$2.5M"
    assert format_currency_compact(99900, "USD") == "$999.00"
    assert format_currency_number(123456, "USD") == "1,234.56"


def test_formatters_are_memoized_per_options():
    assert get_formatter("USD") is get_formatter("USD")
    assert get_formatter("USD") is not get_formatter("USD", compact=True)
    assert get_formatter("USD", "de-DE").locale == "de-DE"


def test_symbol_name_and_options():
    assert currency_symbol("PHP") == "₱"
    assert currency_symbol("CHF") == "CHF"
    assert currency_name("GBP") == "British Pound"
    assert currency_name("CHF") == "CHF"
    options = currency_options()
    assert len(options) == 10
    assert options[0] == {"value": "PHP", "label": "PHP - Philippine Peso", "symbol": "₱"}


def test_parse_amount():
    assert parse_amount("AED 1,234.50") == 123450
    assert parse_amount("$0.1") == 10
    assert parse_amount(12) == 1200
    with pytest.raises(ValidationFailed):
        parse_amount("abc")
