# core/models.py
from __future__ import annotations
"""
Normalization layer: raw store documents -> stable in-memory records.

Stored documents use snake_case fields and may miss any of them; every view
works on the records produced here, never on raw documents.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from core.store import Document

# =========================
# Verification status
# =========================
PENDING = "PENDING"
VERIFIED = "VERIFIED"
REJECTED = "REJECTED"
STATUSES = (VERIFIED, PENDING, REJECTED)

SCORE_MIN = 0.0
SCORE_MAX = 100.0

# Priority order for the certificate image reference
IMAGE_URL_FIELDS = ("image_storage_url", "image_url", "imageUrl", "image_path", "imagePath")

Timestamp = Union[int, float, str, datetime, None]


# =========================
# Field coercion
# =========================
def _text(data: Dict[str, Any], key: str, default: str = "") -> str:
    """Value of `key` as a string; empty/absent -> default."""
    v = data.get(key)
    if v is None or v == "":
        return default
    return str(v)


def coerce_status(value: Any) -> str:
    """Map any stored status onto the three-value enumeration (unknown -> PENDING)."""
    s = str(value or "").strip().upper()
    return s if s in STATUSES else PENDING


def coerce_score(value: Any) -> float:
    """Parse a stored score and clamp it into [0, 100]; unparseable -> 0."""
    if isinstance(value, bool):
        return SCORE_MIN
    try:
        s = float(value)
    except (TypeError, ValueError):
        return SCORE_MIN
    if s != s:  # NaN
        return SCORE_MIN
    return min(SCORE_MAX, max(SCORE_MIN, s))


def resolve_image_url(data: Dict[str, Any]) -> str:
    """First non-empty image reference in IMAGE_URL_FIELDS order, else ''."""
    for key in IMAGE_URL_FIELDS:
        v = data.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return ""


def parse_timestamp(value: Timestamp) -> Optional[datetime]:
    """
    Accepts epoch milliseconds, ISO-8601 strings and datetimes.
    Returns an aware UTC datetime, or None for absent/zero/unparseable values.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        raw = value.strip()
        if raw.isdigit():
            return parse_timestamp(int(raw))
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return None


def _raw_time(value: Any) -> Timestamp:
    """Keep stored timestamps as-is for display; absent -> 0."""
    if value is None or value == "":
        return 0
    return value


# =========================
# Records
# =========================
@dataclass
class Certificate:
    id: str
    user_email: str = ""
    student_name: str = "Unknown"
    student_id: str = "N/A"
    certificate_title: str = "Untitled"
    issuer_name: str = "Unknown"
    issue_date: str = "N/A"
    certificate_type: str = "General"
    duration: str = "N/A"
    course_name: str = ""
    institution_name: str = ""
    grade: str = ""
    extracted_text: str = ""
    verification_status: str = PENDING
    score: float = 0.0
    remarks: str = ""
    image_url: str = ""
    timestamp: Timestamp = 0
    created_at: Timestamp = 0
    updated_at: Timestamp = 0

    @property
    def uploaded_at(self) -> Optional[datetime]:
        return parse_timestamp(self.timestamp)

    @property
    def verified_at(self) -> Timestamp:
        """Time of the verification outcome (updated_at, else upload time)."""
        return self.updated_at or self.timestamp or 0

    @property
    def status_class(self) -> str:
        return f"status-{self.verification_status.lower()}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UserProfile:
    id: str
    name: str = "Unknown"
    email: str = ""
    phone: str = "N/A"
    student_id: str = "N/A"
    institution: str = "N/A"
    department: str = "N/A"
    profile_picture_url: str = ""
    created_at: Timestamp = 0
    total_certificates: int = 0
    verified_certificates: int = 0

    @property
    def initial(self) -> str:
        return (self.name or "?")[0].upper()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AdminProfile:
    uid: str
    display_name: str = ""
    email: str = ""
    phone: str = ""
    role: str = "Admin"
    photo_url: str = ""

    @property
    def initial(self) -> str:
        return (self.display_name or self.email or "A")[0].upper()


# =========================
# Normalizers
# =========================
def normalize_certificate(doc: Document) -> Certificate:
    d = doc.data or {}
    return Certificate(
        id=doc.id,
        user_email=_text(d, "user_email"),
        student_name=_text(d, "student_name", "Unknown"),
        student_id=_text(d, "student_id", "N/A"),
        certificate_title=_text(d, "certificate_title", "Untitled"),
        issuer_name=_text(d, "issuer_name", "Unknown"),
        issue_date=_text(d, "issue_date", "N/A"),
        certificate_type=_text(d, "certificate_type", "General"),
        duration=_text(d, "duration", "N/A"),
        course_name=_text(d, "course_name"),
        institution_name=_text(d, "institution_name"),
        grade=_text(d, "grade"),
        extracted_text=_text(d, "extracted_text"),
        verification_status=coerce_status(d.get("verification_status")),
        score=coerce_score(d.get("score")),
        remarks=_text(d, "remarks"),
        image_url=resolve_image_url(d),
        timestamp=_raw_time(d.get("timestamp")),
        created_at=_raw_time(d.get("created_at")),
        updated_at=_raw_time(d.get("updated_at")),
    )


def normalize_profile(doc: Document, certificates: Optional[List[Certificate]] = None) -> UserProfile:
    """
    Normalize a profile; when `certificates` is given, derive the owner's counts
    from those whose user_email equals the profile email exactly.
    """
    d = doc.data or {}
    email = _text(d, "email")
    profile = UserProfile(
        id=doc.id,
        name=_text(d, "full_name") or email or "Unknown",
        email=email,
        phone=_text(d, "phone", "N/A"),
        student_id=_text(d, "student_id", "N/A"),
        institution=_text(d, "institution", "N/A"),
        department=_text(d, "department", "N/A"),
        profile_picture_url=_text(d, "profile_picture_url"),
        created_at=_raw_time(d.get("created_at")),
    )
    if certificates is not None:
        owned = owned_by(certificates, email)
        profile.total_certificates = len(owned)
        profile.verified_certificates = sum(1 for c in owned if c.verification_status == VERIFIED)
    return profile


def owned_by(certificates: List[Certificate], email: str) -> List[Certificate]:
    if not email:
        return []
    return [c for c in certificates if c.user_email == email]


def normalize_admin_profile(uid: str, account: Optional[Dict[str, Any]], profile: Optional[Dict[str, Any]]) -> AdminProfile:
    """Merge the admin account with its optional profile document (profile wins)."""
    a = account or {}
    p = profile or {}
    return AdminProfile(
        uid=uid,
        display_name=_text(p, "display_name") or _text(a, "display_name"),
        email=_text(a, "email") or _text(p, "email"),
        phone=_text(p, "phone"),
        role=_text(p, "role") or _text(a, "role", "Admin"),
        photo_url=_text(p, "photo_url"),
    )
