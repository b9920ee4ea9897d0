#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

# ---------- Std / 3rd party ----------
import io
import os
from pathlib import Path
from functools import wraps
from typing import Dict, Any, Optional, Callable, TypeVar

from flask import (
    Flask, render_template, request, redirect, url_for,
    session, flash, send_file, jsonify, g
)

# ---------- Core imports ----------
from core import audit
from core.config import Settings, load_settings
from core.errors import (
    AuthError, NotFoundError, PartialDeleteError, StoreError, ValidationError
)
from core.identity import AdminDirectory
from core.models import STATUSES, coerce_status, parse_timestamp
from core.records import RecordRepository
from core.search import ALL, filter_certificates, filter_users, filter_verifications, normalize_status_filter
from core.stats import build_report, dashboard_summary
from core.store import DocumentStore, open_store
from reports.charts import all_charts, to_svg
from reports.statistics_pdf import render_statistics

T = TypeVar("T")

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"


# ---------- Session / Auth helpers ----------
def current_admin() -> Optional[Dict[str, Any]]:
    """Return the signed-in admin stored in session."""
    return session.get("admin")


def login_admin(*, uid: str, email: str, name: str) -> None:
    session.clear()
    session["admin"] = {"uid": uid, "email": email, "name": name}


def logout_admin() -> None:
    session.pop("admin", None)


def _who() -> str:
    a = current_admin()
    return a["email"] if a else "-"


def login_required(fn):
    """Redirect to /login unless an admin is signed in."""
    @wraps(fn)
    def inner(*args, **kwargs):
        if not current_admin():
            flash("Please sign in first.", "warning")
            return redirect(url_for("login_get", next=request.path))
        return fn(*args, **kwargs)
    return inner


# ---------- Accessors ----------
def _repo() -> RecordRepository:
    return g.repo


def _directory() -> AdminDirectory:
    return g.directory


def _attempt(fn: Callable[[], T], default: T) -> tuple:
    """
    Run a store read for a view.
    Returns (value, error); on StoreError the view renders its error state.
    """
    try:
        return fn(), None
    except StoreError as ex:
        audit.log_error(_who(), "store_read_failed", str(ex))
        flash(f"Could not load data: {ex}", "danger")
        return default, str(ex)


def _safe_next(target: Optional[str]) -> str:
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return url_for("dashboard")


# ---------- Factory ----------
def create_app(settings: Optional[Settings] = None, store: Optional[DocumentStore] = None) -> Flask:
    settings = settings or load_settings()
    store = store or open_store(settings)
    audit.configure(settings.data_dir, console=settings.audit_console)

    repo = RecordRepository(store)
    directory = AdminDirectory(store, settings)

    app = Flask(__name__, template_folder=str(TEMPLATES_DIR))
    app.secret_key = settings.secret_key
    app.config["CERTADMIN_SETTINGS"] = settings

    @app.before_request
    def _bind():
        g.repo = repo
        g.directory = directory
        g.settings = settings

    @app.context_processor
    def _inject():
        return {"admin": current_admin(), "statuses": STATUSES}

    @app.template_filter("when")
    def _when(value) -> str:
        dt = parse_timestamp(value)
        return dt.strftime("%Y-%m-%d %H:%M UTC") if dt else "-"

    _register_auth(app)
    _register_records(app)
    _register_reports(app)
    _register_profile(app)
    _register_errors(app)
    return app


# ---------- Auth ----------
def _register_auth(app: Flask) -> None:
    @app.get("/login")
    def login_get():
        if current_admin():
            return redirect(url_for("dashboard"))
        return render_template("login.html", next=request.args.get("next", ""))

    @app.post("/login")
    def login_post():
        email = request.form.get("email", "").strip()
        pw = request.form.get("password", "")
        try:
            profile = _directory().sign_in(email, pw)
        except AuthError as ex:
            flash(str(ex), "danger")
            return render_template("login.html", email=email, next=request.form.get("next", "")), \
                (429 if ex.rate_limited else 401)
        except StoreError as ex:
            flash(f"Sign-in is unavailable: {ex}", "danger")
            return render_template("login.html", email=email), 503
        login_admin(uid=profile.uid, email=profile.email, name=profile.display_name or profile.email)
        audit.log("web_login", profile.email, profile.uid)
        return redirect(_safe_next(request.form.get("next")))

    @app.get("/register")
    def register_get():
        return render_template("register.html", form={})

    @app.post("/register")
    def register_post():
        form = request.form.to_dict()
        try:
            uid = _directory().sign_up(form)
            profile = _directory().get_profile(uid)
        except ValidationError as ex:
            flash(str(ex), "danger")
            form.pop("password", None)
            form.pop("confirm_password", None)
            return render_template("register.html", form=form), 400
        except StoreError as ex:
            flash(f"Registration failed: {ex}", "danger")
            return render_template("register.html", form=form), 503
        login_admin(uid=uid, email=profile.email, name=profile.display_name)
        flash("Account created.", "success")
        return redirect(url_for("dashboard"))

    @app.get("/logout")
    def logout():
        a = current_admin()
        if a:
            audit.log("web_logout", a["email"], a["uid"])
        logout_admin()
        flash("Signed out.", "success")
        return redirect(url_for("login_get"))


# ---------- Users / Certificates / Verifications ----------
def _register_records(app: Flask) -> None:
    @app.get("/")
    @login_required
    def dashboard():
        def _load():
            certs = _repo().list_certificates()
            return dashboard_summary(certs, _repo().count_profiles())
        summary, error = _attempt(_load, None)
        return render_template("dashboard.html", summary=summary, error=error)

    @app.get("/users")
    @login_required
    def users():
        q = request.args.get("q", "")
        items, error = _attempt(_repo().list_profiles, [])
        shown = filter_users(items, q)
        return render_template("users.html", users=shown, total=len(items), q=q, error=error)

    @app.get("/users/<user_id>")
    @login_required
    def user_detail(user_id: str):
        try:
            profile, certs = _repo().get_profile(user_id)
        except NotFoundError:
            flash("User not found.", "warning")
            return redirect(url_for("users"))
        except StoreError as ex:
            flash(f"Could not load user: {ex}", "danger")
            return redirect(url_for("users"))
        return render_template("user_detail.html", user=profile, certificates=certs)

    @app.post("/users/<user_id>/delete")
    @login_required
    def user_delete(user_id: str):
        try:
            deleted = _repo().delete_user(user_id, actor=_who())
        except NotFoundError:
            flash("User not found.", "warning")
        except PartialDeleteError as ex:
            flash(f"{ex}. Failed: {', '.join(ex.failed)}", "danger")
            return redirect(url_for("user_detail", user_id=user_id))
        except StoreError as ex:
            flash(f"Delete failed: {ex}", "danger")
            return redirect(url_for("user_detail", user_id=user_id))
        else:
            flash(f"User deleted with {len(deleted)} certificate(s).", "success")
        return redirect(url_for("users"))

    @app.get("/certificates")
    @login_required
    def certificates():
        q = request.args.get("q", "")
        status = normalize_status_filter(request.args.get("status"))
        items, error = _attempt(_repo().list_certificates, [])
        shown = filter_certificates(items, q, status)
        return render_template("certificates.html", certificates=shown, total=len(items),
                               q=q, status=status, all_value=ALL, error=error)

    @app.get("/certificates/<cert_id>")
    @login_required
    def certificate_detail(cert_id: str):
        try:
            cert = _repo().get_certificate(cert_id)
        except NotFoundError:
            flash("Certificate not found.", "warning")
            return redirect(url_for("certificates"))
        except StoreError as ex:
            flash(f"Could not load certificate: {ex}", "danger")
            return redirect(url_for("certificates"))
        return render_template("certificate_detail.html", cert=cert)

    @app.get("/certificates/<cert_id>/edit")
    @login_required
    def certificate_edit_get(cert_id: str):
        try:
            cert = _repo().get_certificate(cert_id)
        except NotFoundError:
            flash("Certificate not found.", "warning")
            return redirect(url_for("certificates"))
        except StoreError as ex:
            flash(f"Could not load certificate: {ex}", "danger")
            return redirect(url_for("certificates"))
        form = {"verification_status": cert.verification_status, "score": f"{cert.score:g}", "remarks": cert.remarks}
        return render_template("edit_status.html", cert=cert, form=form)

    @app.post("/certificates/<cert_id>/edit")
    @login_required
    def certificate_edit_post(cert_id: str):
        form = {
            "verification_status": request.form.get("verification_status", ""),
            "score": request.form.get("score", "").strip(),
            "remarks": request.form.get("remarks", ""),
        }
        try:
            _repo().update_certificate_status(cert_id, form, actor=_who())
        except ValidationError as ex:
            flash(str(ex), "danger")
            try:
                cert = _repo().get_certificate(cert_id)
            except (NotFoundError, StoreError):
                return redirect(url_for("certificates"))
            form["verification_status"] = coerce_status(form["verification_status"])
            return render_template("edit_status.html", cert=cert, form=form), 400
        except NotFoundError:
            flash("Certificate not found.", "warning")
            return redirect(url_for("certificates"))
        except StoreError as ex:
            flash(f"Update failed: {ex}", "danger")
            return redirect(url_for("certificate_edit_get", cert_id=cert_id))
        flash("Certificate updated.", "success")
        return redirect(url_for("certificates"))

    @app.post("/certificates/<cert_id>/delete")
    @login_required
    def certificate_delete(cert_id: str):
        try:
            _repo().delete_certificate(cert_id, actor=_who())
        except StoreError as ex:
            flash(f"Delete failed: {ex}", "danger")
            return redirect(url_for("certificate_detail", cert_id=cert_id))
        flash("Certificate deleted.", "success")
        return redirect(url_for("certificates"))

    @app.get("/verifications")
    @login_required
    def verifications():
        q = request.args.get("q", "")
        items, error = _attempt(_repo().list_verifications, [])
        shown = filter_verifications(items, q)
        return render_template("verifications.html", items=shown, total=len(items), q=q, error=error)


# ---------- Statistics / Diagnostics ----------
def _register_reports(app: Flask) -> None:
    def _report():
        return build_report(_repo().list_certificates(), _repo().count_profiles())

    @app.get("/statistics")
    @login_required
    def statistics():
        report, error = _attempt(_report, None)
        charts = [(key, to_svg(d)) for key, d in all_charts(report)] if report else []
        return render_template("statistics.html", report=report, charts=charts, error=error)

    @app.get("/statistics.pdf")
    @login_required
    def statistics_pdf():
        try:
            pdf = render_statistics(_report())
        except StoreError as ex:
            flash(f"Could not build report: {ex}", "danger")
            return redirect(url_for("statistics"))
        audit.log("report_pdf", _who())
        return send_file(io.BytesIO(pdf), mimetype="application/pdf",
                         as_attachment=True, download_name="statistics.pdf")

    @app.get("/diagnostics")
    @login_required
    def diagnostics():
        """Raw sample documents and store details for troubleshooting field mappings."""
        limit = request.args.get("limit", type=int) or 5
        samples, error = _attempt(lambda: _repo().sample_certificates(limit), [])
        settings: Settings = g.settings
        info = {
            "backend": settings.store_backend,
            "data_dir": str(settings.data_dir) if settings.store_backend == "json" else "-",
            "audit_dropped_writes": audit.dropped_writes(),
        }
        return render_template("diagnostics.html", samples=samples, info=info, limit=limit, error=error)

    @app.get("/health.json")
    @login_required
    def health():
        """Cross-reference checks between profiles and certificates."""
        try:
            return jsonify(_repo().health_check())
        except StoreError as ex:
            return jsonify({"ok": False, "counts": {}, "issues": [f"store: {ex}"]}), 503


# ---------- Admin profile ----------
def _register_profile(app: Flask) -> None:
    @app.get("/profile")
    @login_required
    def profile():
        try:
            me = _directory().get_profile(current_admin()["uid"])
        except NotFoundError:
            logout_admin()
            flash("Your admin account no longer exists.", "warning")
            return redirect(url_for("login_get"))
        except StoreError as ex:
            flash(f"Could not load profile: {ex}", "danger")
            return redirect(url_for("dashboard"))
        return render_template("profile.html", me=me)

    @app.post("/profile")
    @login_required
    def profile_post():
        uid = current_admin()["uid"]
        form = {
            "display_name": request.form.get("display_name", ""),
            "phone": request.form.get("phone", ""),
            "photo_url": request.form.get("photo_url", ""),
        }
        try:
            me = _directory().update_profile(uid, form)
        except (ValidationError, NotFoundError, StoreError) as ex:
            flash(f"Profile not saved: {ex}", "danger")
            return redirect(url_for("profile"))
        a = dict(current_admin())
        a["name"] = me.display_name or me.email
        session["admin"] = a
        flash("Profile saved.", "success")
        return redirect(url_for("profile"))

    @app.post("/profile/password")
    @login_required
    def profile_password():
        form = {
            "current": request.form.get("current", ""),
            "new": request.form.get("new", ""),
            "confirm": request.form.get("confirm", ""),
        }
        try:
            _directory().change_password(current_admin()["uid"], form)
        except (ValidationError, NotFoundError, StoreError) as ex:
            flash(f"Password not changed: {ex}", "danger")
            return redirect(url_for("profile"))
        flash("Password changed.", "success")
        return redirect(url_for("profile"))


# ---------- Error pages ----------
def _register_errors(app: Flask) -> None:
    @app.errorhandler(404)
    def not_found(_e):
        return render_template("error.html", code=404, message="Page not found."), 404

    @app.errorhandler(StoreError)
    def store_failed(ex: StoreError):
        audit.log_error(_who(), "store_failed", str(ex))
        return render_template("error.html", code=503, message=f"The data store is unavailable: {ex}"), 503


def main() -> None:
    app = create_app()
    # Default to 5000; override with PORT env
    port = int(os.getenv("PORT", "5000"))
    app.run(host="0.0.0.0", port=port, debug=os.getenv("FLASK_DEBUG", "0") == "1")


# ---------- Entry ----------
if __name__ == "__main__":
    main()
