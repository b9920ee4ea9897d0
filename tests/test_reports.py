from __future__ import annotations

from core.stats import build_report
from reports.charts import all_charts, status_pie, to_svg
from reports.statistics_pdf import render_statistics


def test_pdf_written(repo, tmp_path):
    report = build_report(repo.list_certificates(), repo.count_profiles())
    out = tmp_path / "out" / "stats.pdf"
    data = render_statistics(report, out)
    assert data.startswith(b"%PDF")
    assert out.read_bytes() == data


def test_pdf_empty_report():
    data = render_statistics(build_report([], 0))
    assert data.startswith(b"%PDF")


def test_charts_present_for_data(repo):
    report = build_report(repo.list_certificates(), repo.count_profiles())
    keys = [k for k, _ in all_charts(report)]
    assert keys == ["status", "types", "monthly", "scores", "institutions"]
    svg = to_svg(status_pie(report))
    assert svg.startswith("<svg")


def test_no_charts_when_empty():
    assert all_charts(build_report([], 0)) == []
