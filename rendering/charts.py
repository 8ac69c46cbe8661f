"""
Chart extraction over a turn's tool results.

Two sources of charts:
- Pulse insight bundles already carry Vega-Lite specs; those are passed
  through as-is.
- Every other successful tool result is normalized into a table and run
  through the chart selector. When no tool result yields a chart, the
  model's answer is scanned for a markdown table instead.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import config
from agent.logging import get_logger

from .chart_selector import ChartDescription, select_chart
from .tables import normalize_table, parse_markdown_table

logger = get_logger()

_HTML_TAG_RE = re.compile(r"<[^>]*>")
_DEFAULT_VEGA_TITLE = "Business Metric Visualization"


@dataclass
class VegaLiteChart:
    """A pre-built Vega-Lite visualization returned by a tool."""
    spec: dict
    title: str

    def to_dict(self) -> dict:
        return {"spec": self.spec, "title": self.title}


def _parts(result: Any) -> tuple[str, Any, Optional[str]]:
    """(tool name, payload, error) from a ToolResult or its wire dict."""
    if isinstance(result, dict):
        return str(result.get("tool") or ""), result.get("result"), result.get("error")
    return str(getattr(result, "tool", "") or ""), getattr(result, "result", None), getattr(result, "error", None)


def build_charts(tool_results: Iterable[Any], response_text: Optional[str] = None) -> list[ChartDescription]:
    """Infer charts from tool results, falling back to the answer text.

    Args:
        tool_results: ToolResult objects or ``{tool, result, error}`` dicts.
        response_text: The model's final answer.

    Returns:
        One ChartDescription per usable table, in tool-result order.
    """
    charts = []
    for result in tool_results:
        tool, payload, error = _parts(result)
        if error is not None or not payload or "pulse" in tool:
            continue
        table = normalize_table(payload)
        if not table or len(table) < 2:
            continue
        chart = select_chart(table)
        if chart is not None:
            logger.debug(f"[Charts] {chart.type} chart from {tool}: {chart.title}")
            charts.append(chart)

    if not charts and response_text:
        table = parse_markdown_table(response_text)
        if table and len(table) > 1:
            chart = select_chart(table)
            if chart is not None:
                chart.title = f"{config.MARKDOWN_CHART_TITLE_PREFIX}{chart.title}"
                charts.append(chart)
    return charts


def _insight_title(insight_result: dict) -> str:
    markup = insight_result.get("markup")
    if not markup:
        return _DEFAULT_VEGA_TITLE
    title = _HTML_TAG_RE.sub("", str(markup)).strip()
    if "was" in title:
        title = title.split("was")[0].strip() + " Trend"
    return title


def _specs_from_bundle(parsed: Any) -> list[VegaLiteChart]:
    if not isinstance(parsed, dict):
        return []
    bundle = (parsed.get("bundle_response") or {}).get("result") or {}
    found = []
    for group in bundle.get("insight_groups") or []:
        for insight in (group or {}).get("insights") or []:
            insight_result = (insight or {}).get("result") or {}
            viz = insight_result.get("viz")
            if isinstance(viz, dict) and viz.get("$schema"):
                found.append(VegaLiteChart(spec=viz, title=_insight_title(insight_result)))
    return found


def extract_vega_lite_specs(tool_results: Iterable[Any]) -> list[VegaLiteChart]:
    """Collect the Vega-Lite specs carried by Pulse insight bundle results."""
    specs = []
    for result in tool_results:
        tool, payload, _ = _parts(result)
        if tool != config.PULSE_INSIGHT_TOOL or not isinstance(payload, list):
            continue
        for block in payload:
            if not isinstance(block, dict) or block.get("type") != "text" or not block.get("text"):
                continue
            try:
                parsed = json.loads(block["text"])
            except (TypeError, ValueError) as e:
                logger.warning(f"[Charts] Pulse bundle is not valid JSON: {e}")
                continue
            try:
                specs.extend(_specs_from_bundle(parsed))
            except AttributeError as e:
                logger.warning(f"[Charts] Unexpected Pulse bundle structure: {e}")
    return specs
