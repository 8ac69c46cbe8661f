"""
Currency-aware number formatting for chart axes and tooltips.

Short form folds large magnitudes into ``K`` / ``M`` suffixes; long form
keeps every digit with thousands separators.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, localcontext

CURRENCY_KEYWORDS = (
    "sales", "revenue", "profit", "income", "cost", "price", "amount",
    "total sales", "gross", "net", "value", "margin", "budget", "spending",
)

_MAX_FRACTION_DIGITS = 3


def is_currency_field(name) -> bool:
    """True if the column name contains a currency keyword (case-insensitive)."""
    lowered = str(name).lower()
    return any(keyword in lowered for keyword in CURRENCY_KEYWORDS)


def _quantize(value, digits: int) -> Decimal:
    number = Decimal(repr(value))
    # precision must hold every integer digit plus the kept fraction digits
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, number.adjusted() + digits + 2)
        return number.quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP)


def _to_fixed(value: float, digits: int) -> str:
    return str(_quantize(value, digits))


def format_grouped(value: float) -> str:
    """Thousands-separated digits with at most three fraction digits.

    >>> format_grouped(1234567.8915)
    '1,234,567.892'
    """
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    text = f"{_quantize(value, _MAX_FRACTION_DIGITS):,f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text == "-0":
        text = "0"
    return text


def format_number(value, is_currency: bool = False, short: bool = True) -> str:
    """Format a chart value.

    Args:
        value: Number to format.
        is_currency: Prefix with ``$``.
        short: Fold values >= 1,000 into ``K`` (no decimals) and
            >= 1,000,000 into ``M`` (one decimal).

    >>> format_number(2_500_000, is_currency=True)
    '$2.5M'
    >>> format_number(1500, is_currency=False)
    '2K'
    >>> format_number(1234.5, is_currency=True, short=False)
    '$1,234.5'
    """
    prefix = "$" if is_currency else ""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return f"{prefix}{value}"
    if short and math.isfinite(value):
        if value >= 1_000_000:
            return f"{prefix}{_to_fixed(value / 1_000_000, 1)}M"
        if value >= 1_000:
            return f"{prefix}{_to_fixed(value / 1_000, 0)}K"
    return f"{prefix}{format_grouped(value)}"
