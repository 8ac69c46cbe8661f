"""
Column classification for chart inference.

Each rule is a small predicate over a column name and the column's values,
so every rule can be tested against literal samples. A column can be both
numeric and date (``Year: 2022``); categorical means neither.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

_MONTHS = (
    "january|february|march|april|may|june|july|august|september|october|november|december"
    "|jan|feb|mar|apr|jun|jul|aug|sep|sept|oct|nov|dec"
)

# Tried in order, first match wins
DATE_PATTERNS = (
    re.compile(r"\d{4}-\d{2}-\d{2}"),                        # ISO date
    re.compile(r"\d{1,2}/\d{1,2}/\d{4}"),                    # MM/DD/YYYY
    re.compile(r"\d{4}-\d{2}"),                              # ISO year-month
    re.compile(r"^\d{4}$"),                                  # bare year
    re.compile(rf"\b(?:{_MONTHS})\.? \d{{4}}", re.IGNORECASE),  # Month YYYY
    re.compile(r"Q[1-4] \d{4}"),                             # quarter
)

DATE_NAME_RE = re.compile(r"date|time|year|month|quarter|period|day|week", re.IGNORECASE)
TIME_AXIS_RE = re.compile(r"date|time|year|month|quarter|period", re.IGNORECASE)
SALES_RE = re.compile(r"sales|revenue|amount|total|quantity|count|profit", re.IGNORECASE)
GROUPING_RE = re.compile(r"product|category|type|name|region|customer|model", re.IGNORECASE)

_NUMERIC_NOISE_RE = re.compile(r"[$,\s%]")

YEAR_MIN, YEAR_MAX = 1900, 2100


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _present(values: Iterable[Any]) -> list:
    return [v for v in values if v is not None and v != ""]


def looks_numeric(value: Any) -> bool:
    """True for numbers and for strings like ``"$1,200"`` or ``"12.5 %"``."""
    if _is_number(value):
        return True
    if isinstance(value, str):
        cleaned = _NUMERIC_NOISE_RE.sub("", value)
        if not cleaned:
            return False
        try:
            return math.isfinite(float(cleaned))
        except ValueError:
            return False
    return False


def matches_date_pattern(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return any(pattern.search(value) for pattern in DATE_PATTERNS)


def is_numeric_column(name: str, values: list) -> bool:
    """At least one non-empty value parses as a number."""
    return any(looks_numeric(v) for v in _present(values))


def _date_by_name(name: str, values: list) -> bool:
    if not DATE_NAME_RE.search(str(name)):
        return False
    for value in values:
        if _is_number(value) and YEAR_MIN <= value <= YEAR_MAX:
            return True
        if matches_date_pattern(value):
            return True
    return False


def _date_by_value(name: str, values: list) -> bool:
    return any(matches_date_pattern(v) for v in values)


DATE_RULES = (_date_by_name, _date_by_value)


def is_date_column(name: str, values: list) -> bool:
    """Date-ish name with a year/date value, or any value with a date pattern."""
    return any(rule(name, values) for rule in DATE_RULES)


@dataclass
class ColumnProfile:
    """Classification of a table's columns, each list in column order.

    Attributes:
        keys: All column names (taken from the first row).
        numeric: Columns with at least one numeric value.
        dates: Columns classified as date/time.
        categorical: Columns that are neither numeric nor date.
        sales: Preferred value columns (subset of ``numeric``).
        time: Preferred time-axis columns (subset of ``dates``).
        grouping: Preferred series/grouping columns (subset of ``categorical``).
    """
    keys: list[str] = field(default_factory=list)
    numeric: list[str] = field(default_factory=list)
    dates: list[str] = field(default_factory=list)
    categorical: list[str] = field(default_factory=list)
    sales: list[str] = field(default_factory=list)
    time: list[str] = field(default_factory=list)
    grouping: list[str] = field(default_factory=list)


def classify_columns(rows: list[dict]) -> ColumnProfile:
    if not rows:
        return ColumnProfile()
    keys = list(rows[0].keys())
    numeric, dates = [], []
    for key in keys:
        values = [row.get(key) for row in rows]
        if is_numeric_column(key, values):
            numeric.append(key)
        if is_date_column(key, values):
            dates.append(key)
    categorical = [k for k in keys if k not in numeric and k not in dates]
    return ColumnProfile(
        keys=keys,
        numeric=numeric,
        dates=dates,
        categorical=categorical,
        sales=[k for k in numeric if SALES_RE.search(str(k))],
        time=[k for k in dates if TIME_AXIS_RE.search(str(k))],
        grouping=[k for k in categorical if GROUPING_RE.search(str(k))],
    )
