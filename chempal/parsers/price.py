# chempal/parsers/price.py

"""Price and currency parsing for supplier listings."""

import logging
import math
import re
import unicodedata
from dataclasses import dataclass
from typing import Any

from chempal.parsers.quantity import parse_number

logger = logging.getLogger("chempal.parsers")

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "INR": "₹",
    "KRW": "₩",
    "RUB": "₽",
    "TRY": "₺",
    "UAH": "₴",
    "ILS": "₪",
    "NGN": "₦",
    "PHP": "₱",
    "VND": "₫",
    "THB": "฿",
    "PLN": "zł",
    "CAD": "CA$",
    "AUD": "A$",
    "CHF": "CHF",
    "CNY": "CN¥",
    "SEK": "kr",
}

# First code wins for shared symbols ("$" is USD, "¥" is JPY).
_SYMBOL_TO_CODE: dict[str, str] = {}
for _code, _symbol in CURRENCY_SYMBOLS.items():
    _SYMBOL_TO_CODE.setdefault(_symbol, _code)

_ISO_CODE_RE = re.compile(r"\b(" + "|".join(CURRENCY_SYMBOLS) + r")\b")
_MULTI_CHAR_SYMBOLS = sorted(
    (s for s in CURRENCY_SYMBOLS.values() if len(s) > 1),
    key=len,
    reverse=True,
)
_AMOUNT_RE = re.compile(r"\d[\d.,]*")


@dataclass(frozen=True)
class ParsedPrice:
    """A price with its currency."""

    price: float
    currency_code: str
    currency_symbol: str


def get_currency_symbol(text: str) -> str | None:
    """Return the first Unicode currency symbol (category ``Sc``) in *text*."""
    for char in text:
        if unicodedata.category(char) == "Sc":
            return char
    return None


def get_currency_code_from_symbol(symbol: str) -> str | None:
    """Map a currency symbol to its ISO 4217 code."""
    return _SYMBOL_TO_CODE.get(symbol)


def get_symbol_for_code(code: str) -> str:
    """Map an ISO 4217 code to a display symbol (the code itself if unknown)."""
    return CURRENCY_SYMBOLS.get(code.upper(), code.upper())


def _valid_amount(amount: float) -> bool:
    return math.isfinite(amount) and amount >= 0


def _detect_currency(text: str) -> tuple[str, str, str] | None:
    """Find a currency marker in *text*.

    Returns ``(code, symbol, remainder)`` where *remainder* is *text*
    with the marker removed.
    """
    iso = _ISO_CODE_RE.search(text)
    if iso:
        code = iso.group(1)
        rest = text[: iso.start()] + text[iso.end():]
        return code, get_symbol_for_code(code), rest
    for symbol in _MULTI_CHAR_SYMBOLS:
        if symbol in text:
            code = _SYMBOL_TO_CODE[symbol]
            return code, symbol, text.replace(symbol, "", 1)
    symbol = get_currency_symbol(text)
    if symbol is None:
        return None
    code = get_currency_code_from_symbol(symbol)
    if code is None:
        logger.debug("Unmapped currency symbol %r", symbol)
        return None
    return code, symbol, text.replace(symbol, "", 1)


def _parse_structured(
    value: dict[str, Any], default_currency: str | None,
) -> ParsedPrice | None:
    """Parse a vendor price object such as WooCommerce's ``prices`` block."""
    raw = value.get("price", value.get("amount"))
    if raw is None:
        return None
    if isinstance(raw, str):
        amount = parse_number(raw)
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        amount = float(raw)
    else:
        return None
    if amount is None:
        return None

    minor = value.get("currency_minor_unit")
    if isinstance(minor, int) and minor > 0:
        amount = amount / (10 ** minor)

    code = str(
        value.get("currency_code")
        or value.get("currency")
        or default_currency
        or ""
    ).upper()
    if not code:
        return None
    symbol = str(value.get("currency_symbol") or get_symbol_for_code(code))
    if not _valid_amount(amount):
        return None
    return ParsedPrice(price=amount, currency_code=code, currency_symbol=symbol)


def parse_price(
    value: Any, default_currency: str | None = None,
) -> ParsedPrice | None:
    """Parse a price from text, a number, or a structured vendor object.

    Text may carry a currency symbol (``"$1,000"``, ``"12,50 zł"``) or
    an ISO code (``"PLN 12.50"``).  Bare numbers and numeric strings
    only parse when *default_currency* is given.  Returns ``None`` for
    anything unparseable, negative or non-finite.
    """
    if isinstance(value, dict):
        return _parse_structured(value, default_currency)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if default_currency is None or not _valid_amount(float(value)):
            return None
        code = default_currency.upper()
        return ParsedPrice(
            price=float(value),
            currency_code=code,
            currency_symbol=get_symbol_for_code(code),
        )

    if not isinstance(value, str) or not value.strip():
        return None

    detected = _detect_currency(value)
    if detected is None:
        if default_currency is None:
            return None
        code = default_currency.upper()
        detected = (code, get_symbol_for_code(code), value)
    code, symbol, rest = detected

    amount_match = _AMOUNT_RE.search(rest)
    if amount_match is None:
        return None
    if rest[: amount_match.start()].rstrip().endswith("-"):
        return None
    amount = parse_number(amount_match.group(0).rstrip(".,"))
    if amount is None or not _valid_amount(amount):
        return None
    return ParsedPrice(price=amount, currency_code=code, currency_symbol=symbol)
