from __future__ import annotations

# =======================
# FastAPI application
# =======================

from functools import lru_cache
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone

import jwt
from fastapi import FastAPI, HTTPException, Depends, Header, Request, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ---- Core imports
from core import audit
from core.config import Settings, load_settings
from core.errors import AuthError, NotFoundError, PartialDeleteError, StoreError, ValidationError
from core.identity import AdminDirectory
from core.records import RecordRepository
from core.search import filter_certificates, filter_users, filter_verifications
from core.security import issue_jwt, verify_jwt
from core.stats import build_report, dashboard_summary
from core.store import DocumentStore, open_store
from core.validation import LoginIn, StatusUpdateIn

app = FastAPI(
    title="CertAdmin API",
    description="JSON access to certificate verification records for administrators",
    version="1.0.0",
)

# CORS for local dev tools / frontends (tighten in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =======================
# Utilities & Dependencies
# =======================

def _now_iso() -> str:
    """UTC ISO8601 with Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=4)
def _store_for(settings: Settings) -> DocumentStore:
    audit.configure(settings.data_dir, console=settings.audit_console)
    return open_store(settings)


def get_store(settings: Settings = Depends(get_settings)) -> DocumentStore:
    return _store_for(settings)


def get_repo(store: DocumentStore = Depends(get_store)) -> RecordRepository:
    return RecordRepository(store)


def get_directory(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> AdminDirectory:
    return AdminDirectory(store, settings)


# ----- JWT Dependencies -----

def _get_bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Extract Bearer token from Authorization header."""
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip()
    return None


def current_admin(
    token: Optional[str] = Depends(_get_bearer_token),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Resolve the admin from a Bearer JWT; 401 if missing or invalid."""
    if not token:
        raise HTTPException(401, detail="Missing bearer token.", headers={"WWW-Authenticate": "Bearer"})
    try:
        payload = verify_jwt(settings, token)
    except RuntimeError as ex:
        raise HTTPException(503, detail=str(ex))
    except jwt.InvalidTokenError as ex:
        audit.log_security("-", "api_token_rejected", str(ex))
        raise HTTPException(401, detail="Invalid or expired token.", headers={"WWW-Authenticate": "Bearer"})
    return {"uid": payload["sub"], "email": payload.get("email", "")}


# =======================
# Error mapping
# =======================

@app.exception_handler(NotFoundError)
async def _not_found(_: Request, ex: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(ex), "collection": ex.collection, "id": ex.doc_id})


@app.exception_handler(ValidationError)
async def _invalid(_: Request, ex: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(ex)})


@app.exception_handler(PartialDeleteError)
async def _partial(_: Request, ex: PartialDeleteError):
    return JSONResponse(status_code=409, content={
        "detail": str(ex), "deleted": ex.deleted, "failed": ex.failed,
    })


@app.exception_handler(StoreError)
async def _store(_: Request, ex: StoreError):
    audit.log_error("api", "store_failed", str(ex))
    return JSONResponse(status_code=503, content={"detail": f"Store unavailable: {ex}"})


@app.exception_handler(AuthError)
async def _auth(_: Request, ex: AuthError):
    return JSONResponse(status_code=429 if ex.rate_limited else 401, content={"detail": str(ex)})


# =======================
# Health & Auth
# =======================

@app.get("/health", tags=["Admin"])
def health():
    """Basic health check."""
    return {"ok": True, "ts": _now_iso()}


@app.post("/auth/token", tags=["Auth"])
def auth_token(
    inp: LoginIn,
    directory: AdminDirectory = Depends(get_directory),
    settings: Settings = Depends(get_settings),
):
    """Admin JWT login (rate limited inside the directory)."""
    profile = directory.sign_in(inp.email, inp.password)
    try:
        token = issue_jwt(settings, profile.uid, extra={"email": profile.email})
    except RuntimeError as ex:
        raise HTTPException(503, detail=str(ex))
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_in": settings.jwt_ttl_seconds,
        "admin": {"uid": profile.uid, "email": profile.email, "display_name": profile.display_name},
    }


# =======================
# Reports
# =======================

@app.get("/stats", tags=["Reports"])
def stats(repo: RecordRepository = Depends(get_repo), _: dict = Depends(current_admin)):
    return build_report(repo.list_certificates(), repo.count_profiles()).to_dict()


@app.get("/dashboard", tags=["Reports"])
def dashboard(repo: RecordRepository = Depends(get_repo), _: dict = Depends(current_admin)):
    return dashboard_summary(repo.list_certificates(), repo.count_profiles()).to_dict()


# =======================
# Certificates
# =======================

@app.get("/certificates", tags=["Certificates"])
def list_certificates(
    q: str = "",
    status: str = Query("all"),
    repo: RecordRepository = Depends(get_repo),
    _: dict = Depends(current_admin),
) -> List[Dict[str, Any]]:
    return [c.to_dict() for c in filter_certificates(repo.list_certificates(), q, status)]


@app.get("/certificates/{cert_id}", tags=["Certificates"])
def get_certificate(cert_id: str, repo: RecordRepository = Depends(get_repo), _: dict = Depends(current_admin)):
    return repo.get_certificate(cert_id).to_dict()


@app.patch("/certificates/{cert_id}/status", tags=["Certificates"])
def update_status(
    cert_id: str,
    inp: StatusUpdateIn,
    repo: RecordRepository = Depends(get_repo),
    me: dict = Depends(current_admin),
):
    cert = repo.update_certificate_status(cert_id, inp.model_dump(), actor=me["email"] or me["uid"])
    return cert.to_dict()


@app.delete("/certificates/{cert_id}", status_code=204, tags=["Certificates"])
def delete_certificate(cert_id: str, repo: RecordRepository = Depends(get_repo), me: dict = Depends(current_admin)):
    repo.delete_certificate(cert_id, actor=me["email"] or me["uid"])


# =======================
# Users
# =======================

@app.get("/users", tags=["Users"])
def list_users(q: str = "", repo: RecordRepository = Depends(get_repo), _: dict = Depends(current_admin)):
    return [u.to_dict() for u in filter_users(repo.list_profiles(), q)]


@app.get("/users/{user_id}", tags=["Users"])
def get_user(user_id: str, repo: RecordRepository = Depends(get_repo), _: dict = Depends(current_admin)):
    profile, certs = repo.get_profile(user_id)
    out = profile.to_dict()
    out["certificates"] = [c.to_dict() for c in certs]
    return out


@app.delete("/users/{user_id}", tags=["Users"])
def delete_user(user_id: str, repo: RecordRepository = Depends(get_repo), me: dict = Depends(current_admin)):
    deleted = repo.delete_user(user_id, actor=me["email"] or me["uid"])
    return {"ok": True, "deleted_certificates": deleted}


# =======================
# Verifications
# =======================

@app.get("/verifications", tags=["Verifications"])
def list_verifications(q: str = "", repo: RecordRepository = Depends(get_repo), _: dict = Depends(current_admin)):
    return [v.to_dict() for v in filter_verifications(repo.list_verifications(), q)]
