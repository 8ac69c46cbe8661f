"""Chart inference and rendering for tabular tool output."""

from .chart_selector import ChartDescription, select_chart, sort_chronologically, clean_numeric
from .charts import VegaLiteChart, build_charts, extract_vega_lite_specs
from .columns import ColumnProfile, classify_columns
from .display_state import DisplayPreferences, DisplayStateStore
from .formatting import format_number, is_currency_field
from .plotly_renderer import build_figure, save_figure
from .tables import normalize_table, parse_markdown_table

__all__ = [
    "ChartDescription",
    "select_chart",
    "sort_chronologically",
    "clean_numeric",
    "VegaLiteChart",
    "build_charts",
    "extract_vega_lite_specs",
    "ColumnProfile",
    "classify_columns",
    "DisplayPreferences",
    "DisplayStateStore",
    "format_number",
    "is_currency_field",
    "build_figure",
    "save_figure",
    "normalize_table",
    "parse_markdown_table",
]
