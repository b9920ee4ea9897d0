# reports/charts.py
from __future__ import annotations

from typing import List, Optional, Tuple

from reportlab.graphics.shapes import Drawing, String
from reportlab.graphics.charts.piecharts import Pie
from reportlab.graphics.charts.barcharts import VerticalBarChart, HorizontalBarChart
from reportlab.graphics import renderSVG
from reportlab.lib import colors

from core.models import VERIFIED, PENDING, REJECTED
from core.stats import StatisticsReport

STATUS_COLORS = {
    VERIFIED: colors.HexColor("#2e7d32"),
    PENDING: colors.HexColor("#f9a825"),
    REJECTED: colors.HexColor("#c62828"),
}
PALETTE = [
    colors.HexColor("#1565c0"), colors.HexColor("#6a1b9a"), colors.HexColor("#00838f"),
    colors.HexColor("#ef6c00"), colors.HexColor("#558b2f"), colors.HexColor("#ad1457"),
    colors.HexColor("#4e342e"), colors.HexColor("#37474f"),
]
BAR_COLOR = colors.HexColor("#1565c0")

CHART_W = 360
CHART_H = 220


def _title(d: Drawing, text: str) -> None:
    d.add(String(d.width / 2, d.height - 14, text, fontName="Helvetica-Bold", fontSize=11, textAnchor="middle"))


def _short(label: str, n: int = 18) -> str:
    return label if len(label) <= n else label[: n - 1] + "…"


# =========================
# Drawings
# =========================
def status_pie(report: StatisticsReport, width: int = CHART_W, height: int = CHART_H) -> Optional[Drawing]:
    """Share of each status; None when there is nothing to plot."""
    rows = report.status_share()
    if not rows:
        return None
    d = Drawing(width, height)
    pie = Pie()
    pie.x, pie.y = 20, 20
    pie.width = pie.height = min(width, height) - 50
    pie.data = [n for _, n, _ in rows]
    pie.labels = [f"{s} {p:g}%" for s, _, p in rows]
    pie.sideLabels = True
    pie.slices.strokeColor = colors.white
    for i, (status, _, _) in enumerate(rows):
        pie.slices[i].fillColor = STATUS_COLORS.get(status, PALETTE[i % len(PALETTE)])
    d.add(pie)
    _title(d, "Verification status")
    return d


def type_pie(report: StatisticsReport, width: int = CHART_W, height: int = CHART_H) -> Optional[Drawing]:
    rows = report.type_share()
    if not rows:
        return None
    d = Drawing(width, height)
    pie = Pie()
    pie.x, pie.y = 20, 20
    pie.width = pie.height = min(width, height) - 50
    pie.data = [n for _, n, _ in rows]
    pie.labels = [f"{_short(t)} {p:g}%" for t, _, p in rows]
    pie.sideLabels = True
    pie.slices.strokeColor = colors.white
    for i in range(len(rows)):
        pie.slices[i].fillColor = PALETTE[i % len(PALETTE)]
    d.add(pie)
    _title(d, "Certificate types")
    return d


def _vertical_bars(title: str, rows: List[Tuple[str, int]], width: int, height: int) -> Optional[Drawing]:
    if not rows:
        return None
    d = Drawing(width, height)
    chart = VerticalBarChart()
    chart.x, chart.y = 40, 40
    chart.width, chart.height = width - 60, height - 70
    chart.data = [[n for _, n in rows]]
    chart.categoryAxis.categoryNames = [_short(k, 10) for k, _ in rows]
    chart.categoryAxis.labels.angle = 30
    chart.categoryAxis.labels.boxAnchor = "ne"
    chart.categoryAxis.labels.fontSize = 7
    chart.valueAxis.valueMin = 0
    chart.valueAxis.valueMax = max(max(n for _, n in rows), 1)
    chart.valueAxis.labels.fontSize = 7
    chart.bars[0].fillColor = BAR_COLOR
    d.add(chart)
    _title(d, title)
    return d


def monthly_bars(report: StatisticsReport, width: int = CHART_W, height: int = CHART_H) -> Optional[Drawing]:
    return _vertical_bars("Uploads per month", report.month_rows(), width, height)


def score_bars(report: StatisticsReport, width: int = CHART_W, height: int = CHART_H) -> Optional[Drawing]:
    if report.is_empty:
        return None
    return _vertical_bars("Score distribution", list(report.by_score.items()), width, height)


def institution_bars(report: StatisticsReport, width: int = CHART_W, height: int = CHART_H) -> Optional[Drawing]:
    rows = report.top_institutions
    if not rows:
        return None
    d = Drawing(width, height)
    chart = HorizontalBarChart()
    chart.x, chart.y = 110, 20
    chart.width, chart.height = width - 130, height - 50
    # first row drawn at the top
    ordered = list(reversed(rows))
    chart.data = [[n for _, n in ordered]]
    chart.categoryAxis.categoryNames = [_short(k) for k, _ in ordered]
    chart.categoryAxis.labels.fontSize = 7
    chart.valueAxis.valueMin = 0
    chart.valueAxis.valueMax = max(max(n for _, n in rows), 1)
    chart.valueAxis.labels.fontSize = 7
    chart.bars[0].fillColor = BAR_COLOR
    d.add(chart)
    _title(d, "Top institutions")
    return d


def all_charts(report: StatisticsReport) -> List[Tuple[str, Drawing]]:
    """(key, drawing) for every chart that has data, in page order."""
    out: List[Tuple[str, Drawing]] = []
    for key, fn in (
        ("status", status_pie),
        ("types", type_pie),
        ("monthly", monthly_bars),
        ("scores", score_bars),
        ("institutions", institution_bars),
    ):
        d = fn(report)
        if d is not None:
            out.append((key, d))
    return out


def to_svg(drawing: Drawing) -> str:
    """Inline SVG markup (XML prolog stripped) for embedding in HTML."""
    svg = renderSVG.drawToString(drawing)
    start = svg.find("<svg")
    return svg[start:] if start >= 0 else svg
