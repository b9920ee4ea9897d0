# core/stats.py
from __future__ import annotations
"""
Reporting over an in-memory list of normalized certificates.

Every function here is a grouped count (or an average) over records that are
already loaded; nothing touches the store.
"""

from collections import Counter
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Tuple, Any

from core.models import Certificate, VERIFIED, PENDING, REJECTED, STATUSES

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# (label, lower bound inclusive); checked top-down
SCORE_BANDS: Tuple[Tuple[str, float], ...] = (
    ("90-100", 90.0),
    ("80-89", 80.0),
    ("70-79", 70.0),
    ("60-69", 60.0),
    ("Below 60", float("-inf")),
)

TOP_INSTITUTIONS = 10
RECENT_ACTIVITY = 10


def percent(count: int, total: int) -> float:
    """count/total*100 to one decimal; 0.0 when total is 0."""
    if total <= 0:
        return 0.0
    return round(count / total * 100.0, 1)


# =========================
# Histograms
# =========================
def status_histogram(certs: List[Certificate]) -> Dict[str, int]:
    """Counts over the fixed status set, in VERIFIED/PENDING/REJECTED order."""
    counts = Counter(c.verification_status for c in certs)
    return {s: counts.get(s, 0) for s in STATUSES}


def type_histogram(certs: List[Certificate]) -> Dict[str, int]:
    """Counts keyed by free-text certificate_type, in first-seen order."""
    out: Dict[str, int] = {}
    for c in certs:
        key = c.certificate_type or "Unknown"
        out[key] = out.get(key, 0) + 1
    return out


def month_key(cert: Certificate) -> str:
    dt = cert.uploaded_at
    return f"{dt.year:04d}-{dt.month:02d}" if dt else ""


def month_label(key: str) -> str:
    """'2024-03' -> 'Mar 2024'."""
    year, month = key.split("-")
    return f"{MONTH_NAMES[int(month) - 1]} {year}"


def monthly_histogram(certs: List[Certificate]) -> Dict[str, int]:
    """Uploads per UTC year-month, ascending; undated certificates are skipped."""
    counts: Dict[str, int] = {}
    for c in certs:
        key = month_key(c)
        if key:
            counts[key] = counts.get(key, 0) + 1
    return dict(sorted(counts.items()))


def score_band(score: float) -> str:
    for label, floor in SCORE_BANDS:
        if score >= floor:
            return label
    return SCORE_BANDS[-1][0]


def score_histogram(certs: List[Certificate]) -> Dict[str, int]:
    """All five bands, always present."""
    out = {label: 0 for label, _ in SCORE_BANDS}
    for c in certs:
        out[score_band(c.score)] += 1
    return out


def top_institutions(certs: List[Certificate], limit: int = TOP_INSTITUTIONS) -> List[Tuple[str, int]]:
    """Most frequent institution_name values; ties keep stored order."""
    counts: Dict[str, int] = {}
    for c in certs:
        key = c.institution_name or "Unknown"
        counts[key] = counts.get(key, 0) + 1
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return ranked[:limit]


def average_score(certs: List[Certificate]) -> float:
    if not certs:
        return 0.0
    return round(sum(c.score for c in certs) / len(certs), 1)


# =========================
# Reports
# =========================
@dataclass
class StatisticsReport:
    total_certificates: int
    total_users: int
    verified_rate: float
    average_score: float
    by_status: Dict[str, int] = field(default_factory=dict)
    by_type: Dict[str, int] = field(default_factory=dict)
    by_month: Dict[str, int] = field(default_factory=dict)
    by_score: Dict[str, int] = field(default_factory=dict)
    top_institutions: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.total_certificates == 0

    def status_share(self) -> List[Tuple[str, int, float]]:
        """(status, count, percent) for statuses with at least one certificate."""
        total = sum(self.by_status.values())
        return [(s, n, percent(n, total)) for s, n in self.by_status.items() if n > 0]

    def type_share(self) -> List[Tuple[str, int, float]]:
        total = sum(self.by_type.values())
        return [(t, n, percent(n, total)) for t, n in self.by_type.items()]

    def month_rows(self) -> List[Tuple[str, int]]:
        return [(month_label(k), n) for k, n in self.by_month.items()]

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["top_institutions"] = [{"institution": k, "count": n} for k, n in self.top_institutions]
        return out


def build_report(certs: List[Certificate], total_users: int) -> StatisticsReport:
    by_status = status_histogram(certs)
    total = len(certs)
    return StatisticsReport(
        total_certificates=total,
        total_users=total_users,
        verified_rate=percent(by_status[VERIFIED], total),
        average_score=average_score(certs),
        by_status=by_status,
        by_type=type_histogram(certs),
        by_month=monthly_histogram(certs),
        by_score=score_histogram(certs),
        top_institutions=top_institutions(certs),
    )


@dataclass
class DashboardSummary:
    total_users: int
    total_certificates: int
    verified: int
    pending: int
    rejected: int
    recent: List[Certificate] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["recent"] = [c.to_dict() for c in self.recent]
        return out


def _upload_sort_key(cert: Certificate) -> float:
    dt = cert.uploaded_at
    return dt.timestamp() if dt else 0.0


def recent_certificates(certs: List[Certificate], limit: int = RECENT_ACTIVITY) -> List[Certificate]:
    """Newest uploads first."""
    return sorted(certs, key=_upload_sort_key, reverse=True)[:limit]


def dashboard_summary(certs: List[Certificate], total_users: int) -> DashboardSummary:
    by_status = status_histogram(certs)
    return DashboardSummary(
        total_users=total_users,
        total_certificates=len(certs),
        verified=by_status[VERIFIED],
        pending=by_status[PENDING],
        rejected=by_status[REJECTED],
        recent=recent_certificates(certs),
    )
