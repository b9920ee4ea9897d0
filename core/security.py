# core/security.py
from __future__ import annotations
"""
Security utilities for CertAdmin.

- bcrypt hashing with configurable cost
- Pre-hash (SHA-256) to avoid bcrypt 72-byte truncation
- needs_rehash() to detect hashes below the current cost policy
- JWT issue/verify (PyJWT) for the JSON API, role claim "admin"
- In-memory sliding-window rate limiter for sign-in
"""

from typing import Optional, Dict, Any, Deque
from collections import deque
import base64
import hashlib
import secrets
import threading
import time

import bcrypt
import jwt

from core.config import Settings

ADMIN_ROLE = "admin"


# =========================
# Hashing & verification
# =========================
def _prehash(plain: str) -> bytes:
    """SHA-256 digest, base64 encoded so bcrypt never sees NUL bytes."""
    return base64.b64encode(hashlib.sha256(plain.encode("utf-8")).digest())


def hash_password(plain: str, *, cost: int = 12) -> str:
    """bcrypt(prehash(plain)) at the given cost, as a str for JSON/Firestore storage."""
    if not isinstance(plain, str):
        raise TypeError(f"password must be str, not {type(plain).__name__}")
    hashed = bcrypt.hashpw(_prehash(plain), bcrypt.gensalt(rounds=cost))
    return hashed.decode("ascii")


def verify_password(plain: str, hashed: str) -> bool:
    """Constant-time bcrypt check; malformed hashes never verify."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_prehash(plain or ""), hashed.encode("utf-8"))
    except ValueError:
        return False


def needs_rehash(hashed: str, *, cost: int = 12) -> bool:
    """True if the stored hash uses a lower bcrypt cost than the current policy."""
    try:
        return int(hashed.split("$")[2]) < cost
    except (IndexError, ValueError, AttributeError):
        return True


def random_token(nbytes: int = 16) -> str:
    return secrets.token_urlsafe(nbytes)


# =========================
# JWT
# =========================
def issue_jwt(settings: Settings, subject: str, *, extra: Optional[Dict[str, Any]] = None) -> str:
    """
    Signed token with sub, iss, iat, exp, jti and role=admin.
    Raises RuntimeError when no signing secret is configured.
    """
    if not settings.jwt_secret:
        raise RuntimeError("JWT is not configured. Set CERTADMIN_JWT_SECRET.")
    now = int(time.time())
    payload: Dict[str, Any] = {
        "sub": subject,
        "iss": settings.jwt_issuer,
        "iat": now,
        "exp": now + int(settings.jwt_ttl_seconds),
        "jti": random_token(),
        "role": ADMIN_ROLE,
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def verify_jwt(settings: Settings, token: str) -> Dict[str, Any]:
    """Decode and validate; raises jwt.InvalidTokenError subclasses on failure."""
    if not settings.jwt_secret:
        raise RuntimeError("JWT is not configured. Set CERTADMIN_JWT_SECRET.")
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        issuer=settings.jwt_issuer,
        options={"require": ["exp", "iat", "iss", "sub"]},
    )
    if payload.get("role") != ADMIN_ROLE:
        raise jwt.InvalidTokenError("Role mismatch")
    return payload


# =========================
# Sign-in throttling
# =========================
class RateLimiter:
    """
    Sliding-window attempt counter keyed by an arbitrary string (per process).

    `allow(key)` records an attempt and answers whether it is within budget;
    a successful sign-in calls `reset(key)`.
    """

    def __init__(self, max_attempts: int, window_seconds: int, clock=time.monotonic):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _prune(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] > self.window_seconds:
            hits.popleft()

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            self._prune(hits, now)
            if len(hits) >= self.max_attempts:
                return False
            hits.append(now)
        return True

    def retry_after(self, key: str) -> float:
        """Seconds until `key` gets another attempt; 0 when it has budget left."""
        now = self._clock()
        with self._lock:
            hits = self._hits.get(key)
            if not hits:
                return 0.0
            self._prune(hits, now)
            if len(hits) < self.max_attempts:
                return 0.0
            return max(0.0, self.window_seconds - (now - hits[0]))

    def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._hits.clear()
