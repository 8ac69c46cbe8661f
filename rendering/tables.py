"""
Table normalization - turns opaque tool payloads or prose into flat records.

A "table" here is a list of dicts mapping column name to scalar. Any input
that does not look like one of the recognized shapes yields ``None`` rather
than an exception; callers treat ``None`` as "no chart available".

Recognized shapes, first match wins:
1. MCP content envelope ``[{"type": "text", "text": "<json>"}, ...]``
2. Object with a list under ``tuples`` / ``data`` / ``rows`` / ``results``
3. Object with parallel ``columns`` and ``data`` (list of value lists)
4. Non-empty bare list
5. Single non-empty object (one row)
6. String: JSON, else CSV with a header line
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Optional

from agent.logging import get_logger

logger = get_logger()

_ROW_LIST_KEYS = ("tuples", "data", "rows", "results")

_MARKDOWN_TABLE_RE = re.compile(
    r"\|(.+)\|\s*\n\s*\|[\s\-|:]+\|\s*\n((?:\s*\|.+\|\s*\n?)+)"
)
_INT_RE = re.compile(r"^[+-]?\d+$")


def _is_content_envelope(content: Any) -> bool:
    if not isinstance(content, list) or not content:
        return False
    first = content[0]
    return isinstance(first, dict) and first.get("type") == "text" and bool(first.get("text"))


def _zip_columns(columns: list, data: list) -> Optional[list[dict]]:
    if not all(isinstance(row, (list, tuple)) for row in data):
        return None
    names = [str(c) for c in columns]
    return [
        {name: row[i] for i, name in enumerate(names) if i < len(row)}
        for row in data
    ]


def _coerce_csv_cell(text: str):
    if _INT_RE.match(text):
        return int(text)
    try:
        number = float(text)
    except ValueError:
        return text
    return number if math.isfinite(number) else text


def _parse_csv(text: str) -> Optional[list[dict]]:
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        return None
    headers = [h.strip() for h in lines[0].split(",")]
    rows = []
    for line in lines[1:]:
        values = [v.strip() for v in line.split(",")]
        rows.append({
            header: _coerce_csv_cell(values[i])
            for i, header in enumerate(headers)
            if i < len(values)
        })
    return rows or None


def _normalize(content: Any, depth: int) -> Optional[list]:
    if depth > 8 or content is None:
        return None

    if _is_content_envelope(content):
        try:
            parsed = json.loads(content[0]["text"])
        except (TypeError, ValueError):
            logger.debug("[Tables] Content envelope text is not JSON")
            return None
        return _normalize(parsed, depth + 1)

    if isinstance(content, dict):
        columns = content.get("columns")
        for key in _ROW_LIST_KEYS:
            rows = content.get(key)
            if not isinstance(rows, list):
                continue
            if key == "data" and isinstance(columns, list) and rows and isinstance(rows[0], (list, tuple)):
                # columns + data pairing
                break
            return rows or None
        if isinstance(columns, list) and isinstance(content.get("data"), list):
            return _zip_columns(columns, content["data"]) or None
        return [content] if content else None

    if isinstance(content, list):
        return content or None

    if isinstance(content, str):
        try:
            parsed = json.loads(content)
        except ValueError:
            return _parse_csv(content)
        return _normalize(parsed, depth + 1)

    return None


def normalize_table(content: Any) -> Optional[list]:
    """Return ``content`` as a list of records, or None if it is not tabular.

    Never raises.
    """
    try:
        return _normalize(content, 0)
    except Exception as e:
        logger.debug(f"[Tables] Could not normalize payload: {e}")
        return None


def _coerce_markdown_cell(cell: str):
    if cell.startswith("$"):
        try:
            return float(cell.replace("$", "").replace(",", ""))
        except ValueError:
            return cell
    if cell and _INT_RE.match(cell):
        return int(cell)
    try:
        number = float(cell)
    except ValueError:
        return cell
    return number if math.isfinite(number) else cell


def _split_row(line: str) -> list[str]:
    cells = [c.strip() for c in line.split("|")]
    last = len(cells) - 1
    return [c for i, c in enumerate(cells) if not (c == "" and i in (0, last))]


def parse_markdown_table(text: str) -> Optional[list[dict]]:
    """Extract the first pipe table embedded in ``text``.

    Cells starting with ``$`` and plain numeric cells become numbers.
    Returns None when no table with at least one data row is found.

    >>> parse_markdown_table("Totals:\\n| Region | Sales |\\n|---|---|\\n| East | $1,200 |\\n")
    [{'Region': 'East', 'Sales': 1200.0}]
    """
    if not isinstance(text, str):
        return None
    match = _MARKDOWN_TABLE_RE.search(text)
    if not match:
        return None

    headers = [h.strip() for h in match.group(1).split("|") if h.strip()]
    if not headers:
        return None

    rows = []
    for line in match.group(2).split("\n"):
        if not line.strip():
            continue
        cells = _split_row(line)
        row = {
            header: _coerce_markdown_cell(cells[i])
            for i, header in enumerate(headers)
            if i < len(cells)
        }
        if row:
            rows.append(row)
    return rows or None
