# core/config.py
from __future__ import annotations
"""
Runtime configuration for CertAdmin.

All settings come from environment variables with the CERTADMIN_ prefix.
`load_settings()` reads them once per call; callers that need a different
configuration (tests, CLI options) build a Settings directly.
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional
import os

ROOT_DIR = Path(__file__).resolve().parent.parent

STORE_BACKENDS = {"json", "firestore"}

_BCRYPT_COST_DEFAULT = 12


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    store_backend: str = "json"
    data_dir: Path = ROOT_DIR / "data"

    # Firestore backend
    firebase_credentials: Optional[str] = None
    firebase_project: Optional[str] = None

    # Web session & admin registration
    secret_key: str = "change-me"
    admin_registration_code: str = "ADMIN2024"

    # JSON API tokens
    jwt_secret: str = ""
    jwt_issuer: str = "CertAdmin"
    jwt_ttl_seconds: int = 28800

    bcrypt_cost: int = _BCRYPT_COST_DEFAULT

    # Audit
    audit_console: bool = False

    def with_data_dir(self, path: Path) -> "Settings":
        return replace(self, data_dir=Path(path))


def load_settings() -> Settings:
    """Build Settings from the process environment."""
    backend = os.getenv("CERTADMIN_STORE", "json").strip().lower()
    if backend not in STORE_BACKENDS:
        raise ValueError(f"CERTADMIN_STORE must be one of {sorted(STORE_BACKENDS)}, got {backend!r}")

    cost = _env_int("CERTADMIN_BCRYPT_COST", _BCRYPT_COST_DEFAULT)
    if cost < 4 or cost > 16:
        cost = _BCRYPT_COST_DEFAULT

    return Settings(
        store_backend=backend,
        data_dir=Path(os.getenv("CERTADMIN_DATA_DIR", str(ROOT_DIR / "data"))).expanduser(),
        firebase_credentials=os.getenv("CERTADMIN_FIREBASE_CREDENTIALS") or None,
        firebase_project=os.getenv("CERTADMIN_FIREBASE_PROJECT") or None,
        secret_key=os.getenv("CERTADMIN_SECRET", "change-me"),  # set a strong value in production
        admin_registration_code=os.getenv("CERTADMIN_ADMIN_CODE", "ADMIN2024"),
        jwt_secret=os.getenv("CERTADMIN_JWT_SECRET", ""),
        jwt_issuer=os.getenv("CERTADMIN_JWT_ISSUER", "CertAdmin"),
        jwt_ttl_seconds=_env_int("CERTADMIN_JWT_TTL", 28800),
        bcrypt_cost=cost,
        audit_console=_env_flag("CERTADMIN_AUDIT_CONSOLE", False),
    )
