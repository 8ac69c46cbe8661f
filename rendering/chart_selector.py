"""
Chart selection - picks a chart type and encoding for a table.

``select_chart`` is a pure function of its rows. Priority order:

1. time axis + numeric + grouping column + sales-like column -> grouped bar
2. time axis + numeric -> line
3. grouping column + sales-like column, at most 8 rows -> pie
4. categorical axis + numeric -> bar
5. any numeric column -> bar over the first non-numeric column
6. otherwise no chart
"""

from __future__ import annotations

import re
import warnings
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Any, Optional

import pandas as pd

from .columns import ColumnProfile, classify_columns
from .formatting import is_currency_field

CHART_TYPES = ("line", "bar", "pie", "groupedBar")

PIE_MAX_ROWS = 8

_NUMERIC_NOISE_RE = re.compile(r"[$,\s%]")
_FLOAT_PREFIX_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass
class ChartDescription:
    """Render-ready chart specification.

    ``data`` holds the cleaned rows (or pie slices); ``grouped_data`` holds
    one pivoted row per x value for grouped bar charts.
    """
    type: str
    data: list[dict]
    title: str
    x_key: Optional[str] = None
    y_key: Optional[str] = None
    series_key: Optional[str] = None
    grouped_data: Optional[list[dict]] = None
    is_currency: bool = False
    name_key: Optional[str] = None
    value_key: Optional[str] = None

    def __post_init__(self):
        if self.type not in CHART_TYPES:
            raise ValueError(f"Unknown chart type: {self.type!r}")

    def series_values(self) -> list[str]:
        """Distinct series values of a grouped bar chart, alphabetically."""
        if not self.series_key:
            return []
        return sorted({str(row.get(self.series_key)) for row in self.data})

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "type": self.type,
            "data": self.data,
            "title": self.title,
            "isCurrency": self.is_currency,
        }
        optional = {
            "xKey": self.x_key,
            "yKey": self.y_key,
            "seriesKey": self.series_key,
            "groupedData": self.grouped_data,
            "nameKey": self.name_key,
            "valueKey": self.value_key,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data


# ---------------------------------------------------------------------------
# Value cleaning and ordering
# ---------------------------------------------------------------------------

def clean_numeric(value: Any) -> Optional[float]:
    """Parse a display value like ``"$1,200"`` into a float.

    Strips ``$``, ``,``, ``%`` and whitespace, then reads the leading
    number. Unparseable values become 0.0; None stays None.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
        return number if number == number else 0.0
    match = _FLOAT_PREFIX_RE.match(_NUMERIC_NOISE_RE.sub("", str(value)))
    if not match:
        return 0.0
    try:
        return float(match.group(0))
    except (ValueError, OverflowError):
        return 0.0


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _as_timestamp(value: Any) -> Optional[int]:
    if not isinstance(value, str) or not value.strip():
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            ts = pd.to_datetime(value, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
    if ts is None or pd.isna(ts):
        return None
    return ts.value


def _sign(delta) -> int:
    return (delta > 0) - (delta < 0)


def _sort_key(value: Any) -> tuple:
    return _as_number(value), _as_timestamp(value), str(value)


def _compare_keys(key_a: tuple, key_b: tuple) -> int:
    num_a, ts_a, text_a = key_a
    num_b, ts_b, text_b = key_b
    if num_a is not None and num_b is not None:
        return _sign(num_a - num_b)
    if ts_a is not None and ts_b is not None:
        return _sign(ts_a - ts_b)
    return _sign((text_a > text_b) - (text_a < text_b))


def chronological_compare(a: Any, b: Any) -> int:
    """Three-way compare for date-axis values.

    Numbers (including numeric strings such as years) compare numerically,
    parseable dates compare as instants, anything else lexically.
    """
    return _compare_keys(_sort_key(a), _sort_key(b))


def sort_chronologically(rows: list[dict], key: str) -> list[dict]:
    """Stable sort of ``rows`` by ``rows[i][key]`` in time order.

    Each value is parsed once up front; the comparator only sees the parsed keys.
    """
    decorated = [(_sort_key(row.get(key)), row) for row in rows]
    decorated.sort(key=cmp_to_key(lambda d1, d2: _compare_keys(d1[0], d2[0])))
    return [row for _, row in decorated]


def _clean_rows(rows: list[dict], x_key: str, y_key: str) -> list[dict]:
    cleaned = []
    for row in rows:
        if row.get(x_key) is None:
            continue
        new_row = dict(row)
        new_row[y_key] = clean_numeric(new_row.get(y_key))
        cleaned.append(new_row)
    return cleaned


# ---------------------------------------------------------------------------
# Chart builders
# ---------------------------------------------------------------------------

def _value_column(profile: ColumnProfile, axis: Optional[str]) -> Optional[str]:
    if profile.sales:
        return profile.sales[0]
    for key in profile.numeric:
        if key != axis:
            return key
    return profile.numeric[0] if profile.numeric else None


def _grouped_bar(rows: list[dict], x_key: str, y_key: str, series_key: str) -> ChartDescription:
    cleaned = sort_chronologically(_clean_rows(rows, x_key, y_key), x_key)

    grouped: dict[str, dict] = {}
    for row in cleaned:
        x_value = str(row[x_key])
        entry = grouped.setdefault(x_value, {x_key: x_value})
        entry[str(row.get(series_key))] = row.get(y_key)

    return ChartDescription(
        type="groupedBar",
        data=cleaned,
        grouped_data=sort_chronologically(list(grouped.values()), x_key),
        title=f"{y_key} by {x_key} and {series_key}",
        x_key=x_key,
        y_key=y_key,
        series_key=series_key,
        is_currency=is_currency_field(y_key),
    )


def _pie(rows: list[dict], name_col: str, value_col: str) -> ChartDescription:
    slices = []
    seen = set()
    for row in rows:
        name = row.get(name_col)
        if name is None or str(name) in seen:
            continue
        seen.add(str(name))
        slices.append({"name": str(name), "value": clean_numeric(row.get(value_col)) or 0.0})
    return ChartDescription(
        type="pie",
        data=slices,
        title=f"{name_col} by {value_col}",
        name_key="name",
        value_key="value",
        is_currency=is_currency_field(value_col),
    )


def _axis_chart(chart_type: str, rows: list[dict], x_key: str, y_key: str,
                profile: ColumnProfile) -> Optional[ChartDescription]:
    data = _clean_rows(rows, x_key, y_key)
    if x_key in profile.dates:
        data = sort_chronologically(data, x_key)
    if not data:
        return None
    return ChartDescription(
        type=chart_type,
        data=data,
        title=f"{x_key} vs {y_key}",
        x_key=x_key,
        y_key=y_key,
        is_currency=is_currency_field(y_key),
    )


def select_chart(rows: list) -> Optional[ChartDescription]:
    """Pick the chart for a table, or None if no sensible chart exists.

    Args:
        rows: Flat records as produced by ``normalize_table``.
    """
    if not rows:
        return None
    records = [row for row in rows if isinstance(row, dict)]
    if not records or not isinstance(rows[0], dict):
        return None

    profile = classify_columns(records)
    if len(profile.keys) < 2 or not profile.numeric:
        return None

    if profile.time:
        x_key = profile.time[0]
        if profile.grouping and profile.sales:
            return _grouped_bar(records, x_key, profile.sales[0], profile.grouping[0])
        return _axis_chart("line", records, x_key, _value_column(profile, x_key), profile)

    if profile.grouping and profile.sales and len(records) <= PIE_MAX_ROWS:
        return _pie(records, profile.grouping[0], profile.sales[0])

    if profile.categorical:
        x_key = profile.grouping[0] if profile.grouping else profile.categorical[0]
        return _axis_chart("bar", records, x_key, _value_column(profile, x_key), profile)

    x_key = next((k for k in profile.keys if k not in profile.numeric), profile.keys[0])
    return _axis_chart("bar", records, x_key, _value_column(profile, x_key), profile)
