# trackerman/parsers/price_parser.py

"""Locale-tolerant price text normalisation.

Marketplace prices arrive as display strings in whatever format the
viewer's wallet currency uses: ``$1,234.56``, ``1.234,56€``,
``1 234,56 pуб.`` or ``₩ 12,300``.  :func:`parse_price` turns them
into a float amount plus the currency glyph and never raises; text it
cannot read comes back as ``0.0``, which callers treat as "no usable
price".
"""

import re
import unicodedata
from dataclasses import dataclass

DEFAULT_CURRENCY = "$"

_NON_NUMERIC_RE = re.compile(r"[^0-9,.]")
_COMMA_DECIMAL_RE = re.compile(r",\d{2}$")
_LEADING_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


@dataclass(frozen=True)
class PriceText:
    """Numeric amount and currency symbol parsed from display text."""

    amount: float
    currency: str = DEFAULT_CURRENCY


def detect_currency(text: str) -> str:
    """Return the first Unicode currency symbol in *text*, or ``$``."""
    for char in text:
        if unicodedata.category(char) == "Sc":
            return char
    return DEFAULT_CURRENCY


def normalize_number(text: str) -> str:
    """Rewrite a locale-formatted number as plain dot-decimal digits.

    A comma followed by exactly two trailing digits is a decimal comma;
    every other comma and, in that case, every dot is a thousands
    separator.
    """
    # "pуб." and similar abbreviations leave stray separators at the ends
    digits = _NON_NUMERIC_RE.sub("", text).strip(".,")
    if _COMMA_DECIMAL_RE.search(digits):
        whole, _, cents = digits.rpartition(",")
        if "." in whole:
            whole = whole.replace(".", "")
        return f"{whole.replace(',', '')}.{cents}"
    return digits.replace(",", "")


def parse_price(text: str | None) -> PriceText:
    """Parse ``'€1.234,56'``-style text into a :class:`PriceText`."""
    if not text:
        return PriceText(0.0)
    currency = detect_currency(text)
    match = _LEADING_NUMBER_RE.search(normalize_number(text))
    if match is None:
        return PriceText(0.0, currency)
    return PriceText(float(match.group(0)), currency)
