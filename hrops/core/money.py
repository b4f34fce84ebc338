"""
Fixed-point money helpers.

Amounts are stored as ``Decimal`` with two places plus an ISO-4217 code.
Clients of the old dashboard still post free-text strings such as
``"£1,250.00"``; ``parse_amount`` turns those into ``(Decimal, currency)``.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Tuple, Union

CENTS = Decimal("0.01")
MAX_AMOUNT = Decimal("1E10")

CURRENCY_SYMBOLS = {
    "£": "GBP",
    "$": "USD",
    "€": "EUR",
}
SYMBOLS_BY_CODE = {code: symbol for symbol, code in CURRENCY_SYMBOLS.items()}

_AMOUNT_RE = re.compile(
    r"^\s*(?P<symbol>[£$€])?\s*(?P<whole>\d{1,3}(?:,\d{3})+|\d+)(?:\.(?P<frac>\d{1,2}))?\s*(?P<code>[A-Za-z]{3})?\s*$"
)
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def normalize_currency(code: str) -> str:
    code = code.strip().upper()
    if not _CURRENCY_RE.match(code):
        raise ValueError(f"Invalid currency code: {code!r}")
    return code


def parse_amount(value: Union[str, int, float, Decimal]) -> Tuple[Decimal, Optional[str]]:
    """
    Parse an amount into a two-place Decimal and the currency implied by it.

    Accepts numbers, plain numeric strings ("100", "100.5"), symbol-prefixed
    strings ("£100.00", "$1,250.50") and code-suffixed strings ("100.00 EUR").
    The currency is ``None`` when the input does not name one.
    """
    if isinstance(value, bool):
        raise ValueError("Invalid amount format")
    if isinstance(value, (int, Decimal)):
        amount, currency = Decimal(value), None
    elif isinstance(value, float):
        amount, currency = Decimal(str(value)), None
    elif isinstance(value, str):
        match = _AMOUNT_RE.match(value)
        if not match:
            raise ValueError("Invalid amount format")
        whole = match.group("whole").replace(",", "")
        frac = match.group("frac") or "0"
        try:
            amount = Decimal(f"{whole}.{frac}")
        except InvalidOperation as exc:
            raise ValueError("Invalid amount format") from exc
        symbol_currency = CURRENCY_SYMBOLS.get(match.group("symbol") or "")
        code_currency = match.group("code").upper() if match.group("code") else None
        if symbol_currency and code_currency and symbol_currency != code_currency:
            raise ValueError("Amount symbol and currency code disagree")
        currency = symbol_currency or code_currency
    else:
        raise ValueError("Invalid amount format")

    if not amount.is_finite():
        raise ValueError("Invalid amount format")
    if amount < 0:
        raise ValueError("Amount must not be negative")
    # Numeric(12, 2) column: at most ten integer digits
    if amount >= MAX_AMOUNT:
        raise ValueError("Amount is too large")
    try:
        return quantize(amount), currency
    except InvalidOperation as exc:
        raise ValueError("Invalid amount format") from exc


def format_amount(amount: Optional[Decimal], currency: Optional[str]) -> Optional[str]:
    """Render ``Decimal('100')`` / ``GBP`` as ``£100.00``; unknown codes as ``100.00 CHF``."""
    if amount is None:
        return None
    text = f"{quantize(Decimal(amount)):,.2f}"
    symbol = SYMBOLS_BY_CODE.get(currency or "")
    if symbol:
        return f"{symbol}{text}"
    return f"{text} {currency}" if currency else text
