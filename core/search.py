# core/search.py
from __future__ import annotations
from typing import Iterable, List, Optional
import re
import unicodedata

from core.models import Certificate, UserProfile, STATUSES

_WS_RE = re.compile(r"\s+")

ALL = "all"


def _normalize_text(s: Optional[str]) -> str:
    """
    Normalize text for matching:
    - None-safe -> ""
    - NFKC fold (full-width digits/letters)
    - strip + casefold, collapse spaces
    """
    if not s:
        return ""
    s = unicodedata.normalize("NFKC", str(s))
    return _WS_RE.sub(" ", s.strip().casefold())


def _fuzzy_contains(needle: str, hay: Optional[str]) -> bool:
    if not needle:
        return True
    return _normalize_text(needle) in _normalize_text(hay)


def _any_field(needle: str, values: Iterable[Optional[str]]) -> bool:
    return any(_fuzzy_contains(needle, v) for v in values)


def normalize_status_filter(value: Optional[str]) -> str:
    """'all' or one of the statuses; anything else means 'all'."""
    v = (value or ALL).strip().upper()
    return v if v in STATUSES else ALL


def filter_certificates(certs: List[Certificate], term: str = "", status: Optional[str] = ALL) -> List[Certificate]:
    """Match id/title/student/type, then narrow by status."""
    term = (term or "").strip()
    wanted = normalize_status_filter(status)
    out = []
    for c in certs:
        if term and not _any_field(term, (c.id, c.certificate_title, c.student_name, c.certificate_type)):
            continue
        if wanted != ALL and c.verification_status != wanted:
            continue
        out.append(c)
    return out


def filter_users(users: List[UserProfile], term: str = "") -> List[UserProfile]:
    term = (term or "").strip()
    if not term:
        return list(users)
    return [u for u in users if _any_field(term, (u.name, u.email, u.student_id))]


def filter_verifications(items: List[Certificate], term: str = "") -> List[Certificate]:
    term = (term or "").strip()
    if not term:
        return list(items)
    return [v for v in items if _any_field(term, (v.id, v.student_name))]
