# reports/statistics_pdf.py
from __future__ import annotations

from typing import List, Optional, Tuple, Union
from pathlib import Path
from datetime import datetime, timezone
import io

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas
from reportlab.lib.units import mm
from reportlab.lib import colors
from reportlab.graphics import renderPDF
from reportlab.graphics.shapes import Drawing

from core.stats import StatisticsReport
from reports.charts import all_charts

FONT_MAIN = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
BRAND = "CertAdmin"


# ----------- Low-level text helpers -----------
def _draw_left(c: canvas.Canvas, x: float, y: float, text: str, font: str = FONT_MAIN, size: float = 10,
               color=colors.black) -> None:
    c.setFont(font, size)
    c.setFillColor(color)
    c.drawString(x, y, text)


def _draw_right(c: canvas.Canvas, x_right: float, y: float, text: str, font: str = FONT_MAIN, size: float = 10,
                color=colors.black) -> None:
    c.setFont(font, size)
    c.setFillColor(color)
    c.drawRightString(x_right, y, text)


def _draw_hr(c: canvas.Canvas, x1: float, x2: float, y: float, color=colors.grey) -> None:
    c.setStrokeColor(color)
    c.setLineWidth(0.6)
    c.line(x1, y, x2, y)


def _ensure_out_dir(path: Union[str, Path]) -> str:
    p = Path(path).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return str(p)


def _need_new_page(y: float, needed: float, margin: float) -> bool:
    return y - needed < (margin + 20 * mm)


# ----------- Footer / Paging helpers -----------
def _utc_now_display() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%MZ")


def _draw_footer(c: canvas.Canvas, page_w: float, margin: float) -> None:
    """UTC timestamp on the left, page number on the right."""
    _draw_hr(c, margin, page_w - margin, 25 * mm)
    _draw_left(c, margin, 20 * mm, f"Generated (UTC): {_utc_now_display()}", size=8.5, color=colors.gray)
    _draw_right(c, page_w - margin, 20 * mm, f"{BRAND} · Statistics report · Page {c.getPageNumber()}",
                size=8.5, color=colors.gray)


def _finish_page(c: canvas.Canvas, page_w: float, margin: float) -> None:
    _draw_footer(c, page_w, margin)
    c.showPage()


# ----------- Sections -----------
def _draw_table(c: canvas.Canvas, x: float, y: float, title: str, rows: List[Tuple[str, str]],
                col_w: float) -> float:
    _draw_left(c, x, y, title, FONT_BOLD, 11)
    y -= 6 * mm
    for key, val in rows:
        _draw_left(c, x + 2 * mm, y, key, size=9.5)
        _draw_right(c, x + col_w, y, val, size=9.5)
        y -= 5 * mm
    return y - 4 * mm


def _summary_rows(report: StatisticsReport) -> List[Tuple[str, str]]:
    return [
        ("Total certificates", str(report.total_certificates)),
        ("Verified rate", f"{report.verified_rate:g}%"),
        ("Total users", str(report.total_users)),
        ("Average score", f"{report.average_score:g}"),
    ]


def _place_drawing(c: canvas.Canvas, d: Drawing, x: float, y_top: float) -> float:
    renderPDF.draw(d, c, x, y_top - d.height)
    return y_top - d.height - 6 * mm


def render_statistics(report: StatisticsReport, out: Optional[Union[str, Path]] = None,
                      *, title: str = "Certificate statistics") -> bytes:
    """
    Render the statistics report to PDF.

    Returns the PDF bytes; when `out` is given they are also written there.
    """
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(title)
    c.setAuthor(BRAND)
    page_w, page_h = A4
    margin = 18 * mm
    content_w = page_w - 2 * margin

    y = page_h - margin
    _draw_left(c, margin, y, title, FONT_BOLD, 16)
    y -= 5 * mm
    _draw_hr(c, margin, page_w - margin, y)
    y -= 9 * mm

    y = _draw_table(c, margin, y, "Summary", _summary_rows(report), content_w / 2)

    if report.is_empty:
        _draw_left(c, margin, y, "No certificates yet.", size=10, color=colors.gray)
        _finish_page(c, page_w, margin)
        c.save()
        return _emit(buf, out)

    col_w = content_w / 3
    y_tables = y
    _draw_table(c, margin, y_tables, "By status",
                [(s, f"{n} ({p:g}%)") for s, n, p in report.status_share()], col_w - 6 * mm)
    _draw_table(c, margin + col_w, y_tables, "By score",
                [(k, str(n)) for k, n in report.by_score.items()], col_w - 6 * mm)
    y_left = _draw_table(c, margin + 2 * col_w, y_tables, "Top institutions",
                         [(k[:24], str(n)) for k, n in report.top_institutions], col_w - 6 * mm)
    y = min(y_left, y_tables - (len(report.by_score) + 2) * 5 * mm)

    for _, drawing in all_charts(report):
        if _need_new_page(y, drawing.height, margin):
            _finish_page(c, page_w, margin)
            y = page_h - margin
        y = _place_drawing(c, drawing, margin + (content_w - drawing.width) / 2, y)

    _finish_page(c, page_w, margin)
    c.save()
    return _emit(buf, out)


def _emit(buf: io.BytesIO, out: Optional[Union[str, Path]]) -> bytes:
    data = buf.getvalue()
    if out is not None:
        Path(_ensure_out_dir(out)).write_bytes(data)
    return data
