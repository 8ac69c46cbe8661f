"""Tests for rendering/chart_selector.py - chart choice, cleaning and ordering."""

import math
from unittest.mock import patch

import pytest

from rendering import chart_selector
from rendering.chart_selector import (
    ChartDescription,
    chronological_compare,
    clean_numeric,
    select_chart,
    sort_chronologically,
)


class TestCleanNumeric:
    @pytest.mark.parametrize("value, expected", [
        ("$1,200", 1200.0),
        ("12.5%", 12.5),
        ("3.5kg", 3.5),
        (7, 7.0),
        ("abc", 0.0),
        ("", 0.0),
        (math.nan, 0.0),
    ])
    def test_values(self, value, expected):
        assert clean_numeric(value) == expected

    def test_none_stays_none(self):
        assert clean_numeric(None) is None


class TestChronologicalCompare:
    def test_numeric_strings(self):
        assert chronological_compare("2021", "2022") < 0
        assert chronological_compare(2023, "2022") > 0
        assert chronological_compare("9", "10") < 0

    def test_dates(self):
        assert chronological_compare("2023-01-15", "2022-12-31") > 0
        assert chronological_compare("Jan 2023", "Feb 2023") < 0

    def test_lexical_fallback(self):
        assert chronological_compare("apple", "banana") < 0
        assert chronological_compare("same", "same") == 0


class TestSortChronologically:
    ROWS = [
        {"Year": "2023", "v": 1},
        {"Year": "2021", "v": 2},
        {"Year": "2022", "v": 3},
        {"Year": "2021", "v": 4},
    ]

    def test_order_and_stability(self):
        ordered = sort_chronologically(self.ROWS, "Year")
        assert [(r["Year"], r["v"]) for r in ordered] == [
            ("2021", 2), ("2021", 4), ("2022", 3), ("2023", 1),
        ]

    def test_idempotent(self):
        once = sort_chronologically(self.ROWS, "Year")
        assert sort_chronologically(once, "Year") == once

    def test_input_not_mutated(self):
        rows = list(self.ROWS)
        sort_chronologically(rows, "Year")
        assert rows == self.ROWS

    def test_each_value_parsed_once(self):
        rows = [{"Month": f"2023-{m:02d}-01"} for m in range(12, 0, -1)] * 10
        with patch("rendering.chart_selector._as_timestamp", wraps=chart_selector._as_timestamp) as parse:
            ordered = sort_chronologically(rows, "Month")
        assert parse.call_count == len(rows)
        assert ordered[0]["Month"] == "2023-01-01"
        assert ordered[-1]["Month"] == "2023-12-01"


class TestSelectChart:
    def test_line_over_time(self):
        chart = select_chart([
            {"Year": 2023, "Sales": "$2,500"},
            {"Year": 2022, "Sales": "$1,000"},
        ])
        assert chart.type == "line"
        assert chart.x_key == "Year"
        assert chart.y_key == "Sales"
        assert [row["Sales"] for row in chart.data] == [1000.0, 2500.0]
        assert chart.is_currency
        assert chart.title == "Year vs Sales"

    def test_pie_for_few_categories(self):
        chart = select_chart([
            {"Region": "East", "Sales": 100},
            {"Region": "West", "Sales": 200},
        ])
        assert chart.type == "pie"
        assert chart.data == [{"name": "East", "value": 100.0}, {"name": "West", "value": 200.0}]
        assert chart.name_key == "name"
        assert chart.value_key == "value"
        assert chart.title == "Region by Sales"

    def test_pie_keeps_first_occurrence(self):
        chart = select_chart([
            {"Region": "East", "Sales": 100},
            {"Region": "East", "Sales": 999},
            {"Region": None, "Sales": 5},
        ])
        assert chart.data == [{"name": "East", "value": 100.0}]

    def test_bar_when_too_many_categories(self):
        rows = [{"Region": f"R{i}", "Sales": i} for i in range(9)]
        chart = select_chart(rows)
        assert chart.type == "bar"
        assert chart.x_key == "Region"
        assert chart.y_key == "Sales"
        assert [row["Region"] for row in chart.data] == [f"R{i}" for i in range(9)]

    def test_grouped_bar(self):
        chart = select_chart([
            {"Year": 2023, "Region": "West", "Sales": 5},
            {"Year": 2022, "Region": "East", "Sales": 1},
            {"Year": 2022, "Region": "West", "Sales": 2},
            {"Year": 2023, "Region": "East", "Sales": 4},
        ])
        assert chart.type == "groupedBar"
        assert chart.x_key == "Year"
        assert chart.series_key == "Region"
        assert chart.title == "Sales by Year and Region"
        assert chart.grouped_data == [
            {"Year": "2022", "East": 1.0, "West": 2.0},
            {"Year": "2023", "West": 5.0, "East": 4.0},
        ]
        assert chart.series_values() == ["East", "West"]

    def test_categorical_bar(self):
        chart = select_chart([
            {"Product": "Bike", "Units": 3},
            {"Product": "Helmet", "Units": 5},
        ])
        assert chart.type == "bar"
        assert (chart.x_key, chart.y_key) == ("Product", "Units")
        assert not chart.is_currency

    def test_all_numeric_table(self):
        chart = select_chart([{"Id": 1, "Score": 2}, {"Id": 2, "Score": 3}])
        assert chart.type == "bar"
        assert (chart.x_key, chart.y_key) == ("Id", "Score")

    def test_rows_without_x_value_dropped(self):
        chart = select_chart([
            {"Year": 2022, "Sales": 1},
            {"Year": None, "Sales": 2},
            {"Year": 2023, "Sales": None},
        ])
        assert [row["Year"] for row in chart.data] == [2022, 2023]
        assert chart.data[1]["Sales"] is None

    @pytest.mark.parametrize("rows", [
        [],
        [{"a": "x", "b": "y"}],
        [{"Sales": 1}, {"Sales": 2}],
        [1, 2, 3],
    ])
    def test_no_chart(self, rows):
        assert select_chart(rows) is None


class TestChartDescription:
    def test_unknown_type(self):
        with pytest.raises(ValueError):
            ChartDescription(type="area", data=[], title="t")

    def test_wire_keys(self):
        chart = ChartDescription(type="line", data=[{"x": 1}], title="t", x_key="x", y_key="y")
        assert chart.to_dict() == {
            "type": "line",
            "data": [{"x": 1}],
            "title": "t",
            "isCurrency": False,
            "xKey": "x",
            "yKey": "y",
        }
