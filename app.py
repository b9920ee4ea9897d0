#!/usr/bin/env python3
from __future__ import annotations

# ======================== Imports ========================
import json
from dataclasses import replace
import os
from typing import Optional, List
from pathlib import Path

import typer
from rich import print
from rich.table import Table
from rich.panel import Panel

# ---- Core imports
from core import audit
from core.config import Settings, load_settings, STORE_BACKENDS
from core.errors import ConsoleError, StoreError, ValidationError
from core.identity import AdminDirectory
from core.records import RecordRepository, DIAGNOSTIC_SAMPLE
from core.stats import build_report, StatisticsReport
from core.store import CERTIFICATES, PROFILES, DocumentStore, open_store
from reports.statistics_pdf import render_statistics

# ======================== Typer App ========================
app = typer.Typer(add_completion=False, help="CertAdmin: certificate verification admin console")


class _Ctx:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._store: Optional[DocumentStore] = None

    @property
    def store(self) -> DocumentStore:
        if self._store is None:
            self._store = open_store(self.settings)
        return self._store

    @property
    def repo(self) -> RecordRepository:
        return RecordRepository(self.store)

    @property
    def directory(self) -> AdminDirectory:
        return AdminDirectory(self.store, self.settings)


@app.callback()
def main(
    ctx: typer.Context,
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="JSON store directory (overrides CERTADMIN_DATA_DIR)"),
    store: Optional[str] = typer.Option(None, "--store", help="Store backend: json or firestore"),
):
    try:
        settings = load_settings()
    except ValueError as ex:
        raise typer.BadParameter(str(ex))
    if store:
        if store not in STORE_BACKENDS:
            raise typer.BadParameter(f"--store must be one of {sorted(STORE_BACKENDS)}")
        settings = replace(settings, store_backend=store)
    if data_dir:
        settings = settings.with_data_dir(data_dir)
    audit.configure(settings.data_dir, console=settings.audit_console)
    ctx.obj = _Ctx(settings)


# ======================== Helpers ========================
def _fail(ex: Exception) -> None:
    typer.secho(f"Error: {ex}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=2 if isinstance(ex, ValidationError) else 1)


def _report(c: _Ctx) -> StatisticsReport:
    repo = c.repo
    return build_report(repo.list_certificates(), repo.count_profiles())


def _count_table(title: str, rows: List[tuple], *, with_percent: bool = False) -> Table:
    t = Table(title=title)
    t.add_column("Key")
    t.add_column("Count", justify="right")
    if with_percent:
        t.add_column("%", justify="right")
    for row in rows:
        t.add_row(*[f"{v:g}" if isinstance(v, float) else str(v) for v in row])
    return t


# ======================== Reports ========================
@app.command("stats")
def stats(ctx: typer.Context, json_out: bool = typer.Option(False, "--json", help="Print JSON instead of tables")):
    """Summary, status/type/month/score histograms and top institutions."""
    try:
        report = _report(ctx.obj)
    except ConsoleError as ex:
        _fail(ex)
    if json_out:
        typer.echo(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
        return

    print(Panel.fit(
        f"Certificates: [bold]{report.total_certificates}[/bold]   "
        f"Verified rate: [bold]{report.verified_rate:g}%[/bold]   "
        f"Users: [bold]{report.total_users}[/bold]   "
        f"Average score: [bold]{report.average_score:g}[/bold]",
        title="Summary",
    ))
    if report.is_empty:
        typer.secho("No certificates yet.", fg=typer.colors.YELLOW)
        return
    print(_count_table("By status", report.status_share(), with_percent=True))
    print(_count_table("By type", report.type_share(), with_percent=True))
    print(_count_table("Uploads per month", report.month_rows()))
    print(_count_table("By score", list(report.by_score.items())))
    print(_count_table("Top institutions", report.top_institutions))


@app.command("report")
def report_pdf(ctx: typer.Context, out: Path = typer.Option(Path("statistics.pdf"), "--out", help="Output PDF path")):
    """Render the statistics report as PDF."""
    try:
        data = render_statistics(_report(ctx.obj), out)
    except ConsoleError as ex:
        _fail(ex)
    audit.log("report_pdf", "cli", str(out))
    typer.secho(f"Report written to {out} ({len(data)} bytes)", fg=typer.colors.GREEN)


@app.command("diagnose")
def diagnose(ctx: typer.Context, limit: int = typer.Option(DIAGNOSTIC_SAMPLE, "--limit", min=1, help="Sample size")):
    """Print raw sample certificate documents to inspect stored field names."""
    c: _Ctx = ctx.obj
    try:
        samples = c.repo.sample_certificates(limit)
    except ConsoleError as ex:
        _fail(ex)
    print(Panel.fit(f"backend={c.settings.store_backend}  data_dir={c.settings.data_dir}", title="Store"))
    if not samples:
        typer.secho("The certificates collection is empty.", fg=typer.colors.YELLOW)
        return
    for doc in samples:
        t = Table(title=doc.id)
        t.add_column("Field")
        t.add_column("Value", overflow="fold")
        for key in sorted(doc.data):
            t.add_row(key, repr(doc.data[key]))
        print(t)


@app.command("health")
def health(ctx: typer.Context, json_out: bool = typer.Option(False, "--json", help="Print JSON object instead of colored text")):
    """Cross-reference profiles and certificates."""
    try:
        result = ctx.obj.repo.health_check()
    except ConsoleError as ex:
        _fail(ex)
    if json_out:
        typer.echo(json.dumps(result, ensure_ascii=False, indent=2))
    elif result["ok"]:
        print(Panel.fit("[green]HEALTH OK[/green]"))
    else:
        print(Panel.fit("[red]HEALTH ISSUES FOUND[/red]"))
        for i in result["issues"]:
            print(f"[red]- {i}[/red]")
    if not result["ok"]:
        raise typer.Exit(code=1)


# ======================== Admin / Maintenance ========================
SAMPLE_PROFILES = [
    {"full_name": "Alice Johnson", "email": "alice@example.com", "phone": "+1 555 0100",
     "student_id": "S1001", "institution": "Northfield University", "department": "Computer Science"},
    {"full_name": "Bob Lee", "email": "bob@example.com", "phone": "+1 555 0101",
     "student_id": "S1002", "institution": "Lakeside College", "department": "Mathematics"},
]

SAMPLE_CERTIFICATES = [
    {"user_email": "alice@example.com", "student_name": "Alice Johnson", "student_id": "S1001",
     "certificate_title": "Machine Learning Specialization", "issuer_name": "Open Learning",
     "issue_date": "2024-03-10", "certificate_type": "Course", "duration": "3 months",
     "course_name": "Machine Learning", "institution_name": "Northfield University", "grade": "A",
     "verification_status": "VERIFIED", "score": 95, "remarks": "Issuer confirmed",
     "image_url": "https://example.com/certs/ml.png", "timestamp": 1710057600000},
    {"user_email": "alice@example.com", "student_name": "Alice Johnson", "student_id": "S1001",
     "certificate_title": "Data Engineering Bootcamp", "issuer_name": "CodeCamp",
     "issue_date": "2024-05-02", "certificate_type": "Bootcamp", "duration": "12 weeks",
     "institution_name": "CodeCamp", "verification_status": "PENDING", "score": 82,
     "image_path": "certs/de.png", "timestamp": 1714608000000},
    {"user_email": "bob@example.com", "student_name": "Bob Lee", "student_id": "S1002",
     "certificate_title": "Statistics Honors", "issuer_name": "Lakeside College",
     "issue_date": "2024-05-20", "certificate_type": "Academic", "duration": "1 year",
     "institution_name": "Lakeside College", "verification_status": "REJECTED", "score": 55,
     "remarks": "Seal does not match issuer records", "timestamp": 1716163200000},
]


@app.command("seed")
def seed(ctx: typer.Context):
    """Seed sample profiles and certificates if both collections are empty."""
    store: DocumentStore = ctx.obj.store
    try:
        if store.list_all(PROFILES, limit=1) or store.list_all(CERTIFICATES, limit=1):
            typer.secho("Data already present; nothing seeded.", fg=typer.colors.YELLOW)
            return
        for p in SAMPLE_PROFILES:
            store.set(PROFILES, store.new_id(), dict(p, created_at=1704067200000))
        for cert in SAMPLE_CERTIFICATES:
            store.set(CERTIFICATES, store.new_id(), dict(cert))
    except StoreError as ex:
        _fail(ex)
    audit.log("seed", "cli", f"{len(SAMPLE_PROFILES)} profiles, {len(SAMPLE_CERTIFICATES)} certificates")
    typer.secho("Seeded sample data.", fg=typer.colors.GREEN)


@app.command("create-admin")
def create_admin(
    ctx: typer.Context,
    email: str = typer.Option(..., prompt=True),
    display_name: str = typer.Option(..., "--name", prompt="Display name"),
    phone: str = typer.Option("", help="Contact phone"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
):
    """Create an admin account directly (no registration code needed)."""
    form = {
        "display_name": display_name, "email": email, "phone": phone,
        "password": password, "confirm_password": password,
    }
    try:
        uid = ctx.obj.directory.sign_up(form, require_code=False)
    except ConsoleError as ex:
        _fail(ex)
    typer.secho(f"Admin created: {uid}", fg=typer.colors.GREEN)


# ======================== Servers ========================
@app.command("serve")
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(int(os.getenv("PORT", "5000"))),
    debug: bool = typer.Option(os.getenv("FLASK_DEBUG", "0") == "1"),
):
    """Run the web console (Flask development server)."""
    from web.server import create_app
    c: _Ctx = ctx.obj
    create_app(c.settings, c.store).run(host=host, port=port, debug=debug)


@app.command("serve-api")
def serve_api(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(8000),
):
    """Run the JSON API with uvicorn."""
    import uvicorn
    from api import main as api_main
    settings: Settings = ctx.obj.settings
    if not settings.jwt_secret:
        typer.secho("CERTADMIN_JWT_SECRET is not set; token issuance will fail.", fg=typer.colors.YELLOW)
    api_main.app.dependency_overrides[api_main.get_settings] = lambda: settings
    uvicorn.run(api_main.app, host=host, port=port)


# ======================== Entry ========================
if __name__ == "__main__":
    app()
