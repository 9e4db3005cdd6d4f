from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from functools import lru_cache
import re
from typing import Optional, Union

from errors import ValidationFailed

DEFAULT_CURRENCY = "AED"
DEFAULT_LOCALE = "en-US"

CURRENCIES: dict[str, dict[str, str]] = {
    "PHP": {"name": "Philippine Peso", "symbol": "₱", "locale": "en-PH"},
    "AED": {"name": "UAE Dirham", "symbol": "AED", "locale": "en-AE"},
    "USD": {"name": "US Dollar", "symbol": "$", "locale": "en-US"},
    "EUR": {"name": "Euro", "symbol": "€", "locale": "de-DE"},
    "GBP": {"name": "British Pound", "symbol": "£", "locale": "en-GB"},
    "JPY": {"name": "Japanese Yen", "symbol": "¥", "locale": "ja-JP"},
    "INR": {"name": "Indian Rupee", "symbol": "₹", "locale": "en-IN"},
    "SAR": {"name": "Saudi Riyal", "symbol": "﷼", "locale": "ar-SA"},
    "CAD": {"name": "Canadian Dollar", "symbol": "$", "locale": "en-CA"},
    "AUD": {"name": "Australian Dollar", "symbol": "$", "locale": "en-AU"},
}

# (group separator, decimal separator, symbol after the number, indian grouping)
_LOCALE_CONVENTIONS: dict[str, tuple[str, str, bool, bool]] = {
    "de-DE": (".", ",", True, False),
    "en-IN": (",", ".", False, True),
}
_COMPACT_SUFFIXES = ((10**12, "T"), (10**9, "B"), (10**6, "M"), (10**3, "K"))
_AMOUNT_CHARS = re.compile(r"[^\d.,\-]")


@dataclass(frozen=True)
class CurrencyFormatter:
    currency: str
    locale: str
    style: str
    compact: bool
    symbol: str

    def format(self, cents: int) -> str:
        group, decimal_sep, symbol_after, indian = _LOCALE_CONVENTIONS.get(
            self.locale, (",", ".", False, False)
        )
        negative = cents < 0
        value = Decimal(abs(int(cents))) / 100

        suffix = ""
        if self.compact:
            for threshold, letter in _COMPACT_SUFFIXES:
                if value >= threshold:
                    value = value / threshold
                    suffix = letter
                    break

        if suffix:
            number = f"{value.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)}"
            number = number.rstrip("0").rstrip(".")
            number = number.replace(".", decimal_sep) + suffix
        else:
            text = f"{value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}"
            whole, frac = text.split(".")
            number = _group_digits(whole, group, indian) + decimal_sep + frac

        if self.style == "currency":
            if symbol_after:
                number = f"{number} {self.symbol}"
            elif self.symbol.isalpha():
                number = f"{self.symbol} {number}"
            else:
                number = f"{self.symbol}{number}"
        return f"-{number}" if negative else number


def _group_digits(whole: str, sep: str, indian: bool) -> str:
    if len(whole) <= 3:
        return whole
    head, tail = whole[:-3], whole[-3:]
    if not indian:
        return f"{int(whole):,}".replace(",", sep)
    parts = []
    while len(head) > 2:
        parts.insert(0, head[-2:])
        head = head[:-2]
    if head:
        parts.insert(0, head)
    return sep.join(parts + [tail])


@lru_cache(maxsize=None)
def get_formatter(
    currency: str,
    locale: Optional[str] = None,
    *,
    style: str = "currency",
    compact: bool = False,
) -> CurrencyFormatter:
    """Memoized formatter per (currency, locale, options), kept for the process."""
    info = CURRENCIES.get(currency)
    resolved_locale = locale or (info["locale"] if info else DEFAULT_LOCALE)
    symbol = info["symbol"] if info else currency
    return CurrencyFormatter(
        currency=currency,
        locale=resolved_locale,
        style=style,
        compact=compact,
        symbol=symbol,
    )


def format_currency(
    cents: int, currency: str = DEFAULT_CURRENCY, locale: Optional[str] = None
) -> str:
    return get_formatter(currency, locale).format(cents)


def format_currency_compact(
    cents: int, currency: str = DEFAULT_CURRENCY, locale: Optional[str] = None
) -> str:
    return get_formatter(currency, locale, compact=True).format(cents)


def format_currency_number(
    cents: int, currency: str = DEFAULT_CURRENCY, locale: Optional[str] = None
) -> str:
    return get_formatter(currency, locale, style="decimal").format(cents)


def currency_symbol(currency: str) -> str:
    return get_formatter(currency).symbol


def currency_name(currency: str) -> str:
    info = CURRENCIES.get(currency)
    return info["name"] if info else currency


def currency_options() -> list[dict[str, str]]:
    return [
        {"value": code, "label": f"{code} - {info['name']}", "symbol": info["symbol"]}
        for code, info in CURRENCIES.items()
    ]


def parse_amount(value: Union[str, int, float, Decimal]) -> int:
    """Parse a user-entered amount like ``"AED 1,234.50"`` into cents."""
    if isinstance(value, str):
        cleaned = _AMOUNT_CHARS.sub("", value).replace(",", "")
    else:
        cleaned = str(value)
    try:
        amount = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValidationFailed("Please enter a valid amount", field="amount") from exc
    if not amount.is_finite():
        raise ValidationFailed("Please enter a valid amount", field="amount")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
