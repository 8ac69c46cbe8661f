"""Tests for rendering/charts.py - chart extraction over tool results."""

import json

import config
from agent.tool_executor import ToolResult
from rendering.charts import VegaLiteChart, build_charts, extract_vega_lite_specs


def _envelope(obj):
    return [{"type": "text", "text": json.dumps(obj)}]


SALES_ROWS = {"data": [{"Year": 2022, "Sales": 100}, {"Year": 2023, "Sales": 150}]}

MARKDOWN_ANSWER = (
    "Sales by region:\n"
    "| Region | Sales |\n"
    "|---|---|\n"
    "| East | $1,000 |\n"
    "| West | $2,000 |\n"
)


def _bundle(viz, markup=None):
    result = {"viz": viz}
    if markup is not None:
        result["markup"] = markup
    return {
        "bundle_response": {
            "result": {"insight_groups": [{"insights": [{"result": result}]}]},
        },
    }


class TestBuildCharts:
    def test_chart_from_wire_dict(self):
        charts = build_charts([{"tool": "query-datasource", "arguments": {}, "result": _envelope(SALES_ROWS)}])
        assert len(charts) == 1
        assert charts[0].type == "line"

    def test_chart_from_tool_result_object(self):
        charts = build_charts([ToolResult("query-datasource", {}, result=SALES_ROWS)])
        assert [c.type for c in charts] == ["line"]

    def test_one_chart_per_usable_table(self):
        results = [
            {"tool": "q1", "result": SALES_ROWS},
            {"tool": "q2", "result": {"rows": [{"Region": "East", "Sales": 1}, {"Region": "West", "Sales": 2}]}},
        ]
        assert [c.type for c in build_charts(results)] == ["line", "pie"]

    def test_skips_errors_pulse_and_single_rows(self):
        results = [
            {"tool": "query-datasource", "error": "boom"},
            {"tool": "list-pulse-metrics", "result": SALES_ROWS},
            {"tool": "query-datasource", "result": {"data": [{"Year": 2022, "Sales": 1}]}},
            {"tool": "query-datasource", "result": []},
        ]
        assert build_charts(results) == []

    def test_markdown_fallback(self):
        charts = build_charts([], MARKDOWN_ANSWER)
        assert len(charts) == 1
        assert charts[0].title == f"{config.MARKDOWN_CHART_TITLE_PREFIX}Region by Sales"
        assert charts[0].data == [{"name": "East", "value": 1000.0}, {"name": "West", "value": 2000.0}]

    def test_markdown_ignored_when_tools_chart(self):
        charts = build_charts([{"tool": "q", "result": SALES_ROWS}], MARKDOWN_ANSWER)
        assert [c.type for c in charts] == ["line"]

    def test_markdown_single_row_ignored(self):
        text = "| Region | Sales |\n|---|---|\n| East | 5 |\n"
        assert build_charts([], text) == []


class TestExtractVegaLiteSpecs:
    VIZ = {"$schema": "https://vega.github.io/schema/vega-lite/v5.json", "mark": "line"}

    def _result(self, bundle, tool=None):
        return {"tool": tool or config.PULSE_INSIGHT_TOOL, "result": _envelope(bundle)}

    def test_spec_with_markup_title(self):
        specs = extract_vega_lite_specs([self._result(_bundle(self.VIZ, "<b>Sales</b> was up 5%"))])
        assert specs == [VegaLiteChart(spec=self.VIZ, title="Sales Trend")]

    def test_default_title(self):
        specs = extract_vega_lite_specs([self._result(_bundle(self.VIZ))])
        assert specs[0].title == "Business Metric Visualization"

    def test_viz_without_schema_skipped(self):
        assert extract_vega_lite_specs([self._result(_bundle({"mark": "bar"}))]) == []

    def test_other_tools_ignored(self):
        assert extract_vega_lite_specs([self._result(_bundle(self.VIZ), tool="query-datasource")]) == []

    def test_invalid_json_skipped(self):
        result = {"tool": config.PULSE_INSIGHT_TOOL, "result": [{"type": "text", "text": "{oops"}]}
        assert extract_vega_lite_specs([result]) == []

    def test_non_string_text_skipped(self):
        result = {"tool": config.PULSE_INSIGHT_TOOL, "result": [
            {"type": "text", "text": 42},
            *_envelope(_bundle(self.VIZ)),
        ]}
        specs = extract_vega_lite_specs([result])
        assert [s.spec for s in specs] == [self.VIZ]

    def test_to_dict(self):
        assert VegaLiteChart(spec={"a": 1}, title="t").to_dict() == {"spec": {"a": 1}, "title": "t"}
