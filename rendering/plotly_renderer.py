"""
Plotly-based renderer for chart descriptions.

Stateless: ``build_figure()`` creates a fresh go.Figure from a
ChartDescription each time it is called, so a chart can be re-rendered on
every display without carrying state between calls.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import plotly.graph_objects as go

from agent.logging import get_logger

from .chart_selector import ChartDescription
from .formatting import format_number

logger = get_logger()

_DEFAULT_COLORS = [
    "#007bff",
    "#28a745",
    "#ffc107",
    "#dc3545",
    "#6c757d",
    "#17a2b8",
    "#fd7e14",
    "#6f42c1",
]

# Explicit layout defaults so exported HTML looks the same in any viewer theme
_DEFAULT_LAYOUT = dict(
    paper_bgcolor="white",
    plot_bgcolor="white",
    font_color="#2a3f5f",
    margin=dict(t=60, r=30, l=60, b=40),
)

_CHART_HEIGHT = 300
_GROUPED_CHART_HEIGHT = 400
_MAX_Y_TICKS = 6


class ColorState:
    """Assigns each label a stable colour from the default palette."""

    def __init__(self):
        self.label_colors: dict[str, str] = {}

    def next_color(self, label: str) -> str:
        if label not in self.label_colors:
            self.label_colors[label] = _DEFAULT_COLORS[len(self.label_colors) % len(_DEFAULT_COLORS)]
        return self.label_colors[label]


def _numeric(values) -> list[float]:
    return [v for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]


def _y_ticks(values: list[float], is_currency: bool) -> Optional[dict]:
    """Tick positions and short-form labels for a value axis."""
    numbers = _numeric(values)
    if not numbers:
        return None
    top = max(max(numbers), 0)
    bottom = min(min(numbers), 0)
    if top == bottom:
        return None
    step = (top - bottom) / (_MAX_Y_TICKS - 1)
    ticks = [bottom + i * step for i in range(_MAX_Y_TICKS)]
    return dict(
        tickmode="array",
        tickvals=ticks,
        ticktext=[format_number(t, is_currency, short=True) for t in ticks],
    )


def _hover_labels(values, is_currency: bool) -> list[str]:
    return [
        format_number(v, is_currency, short=False) if v is not None else ""
        for v in values
    ]


def _add_axis_trace(fig: go.Figure, chart: ChartDescription, colors: ColorState) -> None:
    xs = [row.get(chart.x_key) for row in chart.data]
    ys = [row.get(chart.y_key) for row in chart.data]
    color = colors.next_color(chart.y_key)
    hover = _hover_labels(ys, chart.is_currency)
    template = f"{chart.x_key}: %{{x}}<br>{chart.y_key}: %{{customdata}}<extra></extra>"
    if chart.type == "line":
        fig.add_trace(go.Scatter(
            x=xs, y=ys, name=chart.y_key, mode="lines+markers",
            line=dict(color=color, width=2), marker=dict(size=8),
            customdata=hover, hovertemplate=template,
        ))
    else:
        fig.add_trace(go.Bar(
            x=xs, y=ys, name=chart.y_key, marker_color=color,
            customdata=hover, hovertemplate=template,
        ))
    ticks = _y_ticks(ys, chart.is_currency)
    if ticks:
        fig.update_yaxes(**ticks)
    fig.update_xaxes(title_text=chart.x_key, type="category")


def _add_grouped_traces(fig: go.Figure, chart: ChartDescription, colors: ColorState) -> None:
    rows = chart.grouped_data or []
    xs = [row.get(chart.x_key) for row in rows]
    all_values = []
    for series in chart.series_values():
        ys = [row.get(series) for row in rows]
        all_values.extend(ys)
        fig.add_trace(go.Bar(
            x=xs, y=ys, name=series, marker_color=colors.next_color(series),
            customdata=_hover_labels(ys, chart.is_currency),
            hovertemplate=f"{chart.x_key}: %{{x}}<br>{series}: %{{customdata}}<extra></extra>",
        ))
    fig.update_layout(barmode="group")
    ticks = _y_ticks(all_values, chart.is_currency)
    if ticks:
        fig.update_yaxes(**ticks)
    fig.update_xaxes(title_text=chart.x_key, type="category")


def _add_pie_trace(fig: go.Figure, chart: ChartDescription, colors: ColorState) -> None:
    name_key = chart.name_key or "name"
    value_key = chart.value_key or "value"
    labels = [str(s.get(name_key)) for s in chart.data]
    values = [s.get(value_key) for s in chart.data]
    fig.add_trace(go.Pie(
        labels=labels,
        values=values,
        marker=dict(colors=[colors.next_color(label) for label in labels]),
        textinfo="label+percent",
        customdata=_hover_labels(values, chart.is_currency),
        hovertemplate="%{label}: %{customdata}<extra></extra>",
        sort=False,
    ))


def build_figure(chart: ChartDescription) -> go.Figure:
    """Create a Plotly figure for a chart description.

    Raises:
        ValueError: if the chart type is not supported.
    """
    fig = go.Figure()
    colors = ColorState()
    if chart.type in ("line", "bar"):
        _add_axis_trace(fig, chart, colors)
    elif chart.type == "groupedBar":
        _add_grouped_traces(fig, chart, colors)
    elif chart.type == "pie":
        _add_pie_trace(fig, chart, colors)
    else:
        raise ValueError(f"Unsupported chart type: {chart.type}")

    height = _GROUPED_CHART_HEIGHT if chart.type == "groupedBar" else _CHART_HEIGHT
    fig.update_layout(title_text=chart.title, height=height, showlegend=True, **_DEFAULT_LAYOUT)
    return fig


def save_figure(fig: go.Figure, filepath: str | Path) -> Path:
    """Write ``fig`` as a standalone HTML file and return the resolved path."""
    path = Path(filepath)
    if path.suffix.lower() != ".html":
        path = path.with_suffix(".html")
    path = path.resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.write_html(str(path), include_plotlyjs="cdn")
    logger.debug(f"[Render] Saved chart to {path}")
    return path
