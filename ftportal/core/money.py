"""
Money parsing utilities for budget and estimated-value strings.

Handles various formats:
- "€ 1.500.000" → ("1500000", "EUR")
- "EUR 2,5 million" → ("2500000", "EUR")
- "£600,000" → ("600000", "GBP")
- "3m USD" → ("3000000", "USD")
"""

import re
from typing import NamedTuple


class Money(NamedTuple):
    amount: str  # integer string, "" if unknown
    currency: str  # ISO code, "" if unknown


_MONEY = re.compile(
    r"(€|\$|£|EUR|USD|GBP)?\s*(\d[\d.,]*)\s*(?:(million|mio|m)(?![a-z]))?",
    re.IGNORECASE,
)

_SYMBOLS = {
    "€": "EUR",
    "$": "USD",
    "£": "GBP",
}

_CURRENCY_HINTS = [
    ("EUR", re.compile(r"EUR|€")),
    ("USD", re.compile(r"USD|\$")),
    ("GBP", re.compile(r"GBP|£")),
]


def _to_number(raw: str) -> float:
    """
    Interpret European and English digit grouping.

    "1.500.000" and "1,500,000" are both 1500000; "2,5" is 2.5 and "2.5"
    is 2.5.
    """
    if "." in raw and "," in raw:
        # Whichever comes last is the decimal separator
        if raw.rfind(",") > raw.rfind("."):
            raw = raw.replace(".", "").replace(",", ".")
        else:
            raw = raw.replace(",", "")
    elif raw.count(".") > 1 or re.fullmatch(r"\d{1,3}(\.\d{3})+", raw):
        raw = raw.replace(".", "")
    elif raw.count(",") > 1 or re.fullmatch(r"\d{1,3}(,\d{3})+", raw):
        raw = raw.replace(",", "")
    else:
        raw = raw.replace(",", ".")
    return float(raw)


def parse_money(text: str) -> Money:
    """
    Extract a numeric amount and currency from free text.

    A trailing "million"/"m" multiplies by 1,000,000. The currency comes from
    the symbol or code next to the number, else from anywhere in the text.
    Returns empty fields when no number is found.

    Examples:
        >>> parse_money("Estimated value: EUR 2.5 million")
        Money(amount='2500000', currency='EUR')
        >>> parse_money("not specified")
        Money(amount='', currency='')
    """
    if not text or not str(text).strip():
        return Money("", "")

    t = re.sub(r"\s+", " ", str(text))
    match = _MONEY.search(t)

    amount = ""
    currency = ""
    if match:
        try:
            value = _to_number(match.group(2).rstrip(".,"))
            if match.group(3):
                value *= 1_000_000
            amount = str(int(round(value)))
        except ValueError:
            amount = ""

        symbol = (match.group(1) or "").upper()
        currency = _SYMBOLS.get(symbol, symbol)

    if not currency:
        for code, pattern in _CURRENCY_HINTS:
            if pattern.search(t):
                currency = code
                break

    return Money(amount, currency)
