# core/identity.py
from __future__ import annotations
"""
Identity boundary: admin accounts and their profiles.

Accounts live in `admins/<uid>` (email, bcrypt password_hash, display_name,
role); editable profile data lives in `admin_profiles/<uid>`. Sign-out is a
session concern of the web layer and has no store side effect.
"""

from typing import Any, Dict, Optional
from datetime import datetime, timezone

from core import audit
from core.config import Settings
from core.errors import AuthError, NotFoundError, ValidationError
from core.models import AdminProfile, normalize_admin_profile
from core.security import RateLimiter, hash_password, needs_rehash, verify_password
from core.store import ADMINS, ADMIN_PROFILES, Document, DocumentStore
from core.validation import (
    PasswordChangeIn, ProfileUpdateIn, RegistrationIn, parse,
)

ADMIN_ROLE_LABEL = "Admin"

# 5 attempts / 60 seconds per email
login_rate_limiter = RateLimiter(max_attempts=5, window_seconds=60)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


class AdminDirectory:
    def __init__(self, store: DocumentStore, settings: Settings, limiter: Optional[RateLimiter] = None):
        self.store = store
        self.settings = settings
        self.limiter = limiter or login_rate_limiter

    # ---- lookups ----
    def find_by_email(self, email: str) -> Optional[Document]:
        email = (email or "").strip().lower()
        if not email:
            return None
        hits = self.store.query_eq(ADMINS, "email", email)
        return hits[0] if hits else None

    def get_admin(self, uid: str) -> Dict[str, Any]:
        doc = self.store.get(ADMINS, uid)
        if doc is None:
            raise NotFoundError(ADMINS, uid)
        return doc.data

    def get_profile(self, uid: str) -> AdminProfile:
        account = self.get_admin(uid)
        profile = self.store.get(ADMIN_PROFILES, uid)
        return normalize_admin_profile(uid, account, profile.data if profile else None)

    # ---- sign-up / sign-in ----
    def sign_up(self, form: Dict[str, Any], *, require_code: bool = True) -> str:
        """
        Create an admin account and profile; returns the new uid.
        All validation happens before the first store write.
        """
        data = parse(RegistrationIn, form)
        if require_code and data.admin_code != self.settings.admin_registration_code:
            audit.log_security(data.email, "register_rejected", "bad registration code")
            raise ValidationError("Invalid admin registration code")
        if self.find_by_email(data.email) is not None:
            raise ValidationError("An admin with this email already exists")

        uid = self.store.new_id()
        now = _now_iso()
        self.store.set(ADMINS, uid, {
            "email": data.email,
            "display_name": data.display_name,
            "role": ADMIN_ROLE_LABEL,
            "password_hash": hash_password(data.password, cost=self.settings.bcrypt_cost),
            "created_at": now,
            "last_login": None,
        })
        self.store.set(ADMIN_PROFILES, uid, {
            "display_name": data.display_name,
            "email": data.email,
            "phone": data.phone,
            "role": ADMIN_ROLE_LABEL,
            "photo_url": "",
            "created_at": now,
            "updated_at": now,
        })
        audit.log("register", data.email, uid)
        return uid

    def sign_in(self, email: str, password: str) -> AdminProfile:
        email = (email or "").strip().lower()
        key = f"login:{email}"
        if not self.limiter.allow(key):
            wait = int(self.limiter.retry_after(key)) + 1
            audit.log_security(email, "login_rate_limited", f"retry in {wait}s")
            raise AuthError(f"Too many sign-in attempts; try again in {wait} seconds", rate_limited=True)

        doc = self.find_by_email(email)
        stored = (doc.data.get("password_hash") if doc else "") or ""
        if doc is None or not verify_password(password, stored):
            audit.log_security(email or "-", "login_failed")
            raise AuthError("Invalid email or password")

        changes: Dict[str, Any] = {"last_login": _now_iso()}
        if needs_rehash(stored, cost=self.settings.bcrypt_cost):
            changes["password_hash"] = hash_password(password, cost=self.settings.bcrypt_cost)
        self.store.update(ADMINS, doc.id, changes)
        self.limiter.reset(key)
        audit.log("login", email, doc.id)
        return self.get_profile(doc.id)

    # ---- profile & password ----
    def update_profile(self, uid: str, form: Dict[str, Any]) -> AdminProfile:
        data = parse(ProfileUpdateIn, form)
        account = self.get_admin(uid)
        self.store.set(ADMIN_PROFILES, uid, {
            "display_name": data.display_name.strip(),
            "email": account.get("email", ""),
            "phone": data.phone.strip(),
            "photo_url": data.photo_url.strip(),
            "updated_at": _now_iso(),
        }, merge=True)
        if data.display_name.strip():
            self.store.update(ADMINS, uid, {"display_name": data.display_name.strip()})
        audit.log("profile_update", account.get("email", uid), uid)
        return self.get_profile(uid)

    def change_password(self, uid: str, form: Dict[str, Any]) -> None:
        data = parse(PasswordChangeIn, form)
        account = self.get_admin(uid)
        if not verify_password(data.current, account.get("password_hash", "")):
            audit.log_security(account.get("email", uid), "password_change_rejected")
            raise ValidationError("Current password is incorrect")
        self.store.update(ADMINS, uid, {
            "password_hash": hash_password(data.new, cost=self.settings.bcrypt_cost),
        })
        audit.log_security(account.get("email", uid), "password_change", uid)
