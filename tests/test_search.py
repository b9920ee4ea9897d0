from __future__ import annotations

from core.models import normalize_certificate, normalize_profile
from core.search import ALL, filter_certificates, filter_users, filter_verifications, normalize_status_filter
from core.store import Document

CERTS = [
    normalize_certificate(Document("abc123", {"certificate_title": "Machine Learning", "student_name": "Alice",
                                              "certificate_type": "Course", "verification_status": "VERIFIED"})),
    normalize_certificate(Document("def456", {"certificate_title": "Statistics", "student_name": "Bob",
                                              "certificate_type": "Academic", "verification_status": "REJECTED"})),
    normalize_certificate(Document("ghi789", {"certificate_title": "Bootcamp", "student_name": "Ａｌｉｃｅ",
                                              "certificate_type": "Bootcamp"})),
]


def _ids(items):
    return [x.id for x in items]


def test_certificate_search_fields():
    assert _ids(filter_certificates(CERTS, "machine")) == ["abc123"]
    assert _ids(filter_certificates(CERTS, "DEF4")) == ["def456"]
    assert _ids(filter_certificates(CERTS, "academic")) == ["def456"]
    # full-width letters fold to ASCII
    assert _ids(filter_certificates(CERTS, "alice")) == ["abc123", "ghi789"]


def test_certificate_status_filter():
    assert _ids(filter_certificates(CERTS, "", "verified")) == ["abc123"]
    assert _ids(filter_certificates(CERTS, "", "PENDING")) == ["ghi789"]
    assert _ids(filter_certificates(CERTS, "", ALL)) == _ids(CERTS)
    assert _ids(filter_certificates(CERTS, "alice", "PENDING")) == ["ghi789"]


def test_status_filter_normalization():
    assert normalize_status_filter(None) == ALL
    assert normalize_status_filter("bogus") == ALL
    assert normalize_status_filter(" rejected ") == "REJECTED"


def test_user_search():
    users = [
        normalize_profile(Document("u1", {"full_name": "Alice", "email": "alice@x.io", "student_id": "S1"})),
        normalize_profile(Document("u2", {"full_name": "Bob", "email": "bob@y.io", "student_id": "S2"})),
    ]
    assert _ids(filter_users(users, "y.io")) == ["u2"]
    assert _ids(filter_users(users, "s1")) == ["u1"]
    assert _ids(filter_users(users, "")) == ["u1", "u2"]
    assert filter_users(users, "nobody") == []


def test_verification_search_by_id_and_student():
    assert _ids(filter_verifications(CERTS, "bob")) == ["def456"]
    assert _ids(filter_verifications(CERTS, "ghi")) == ["ghi789"]
    # title is not a verification search field
    assert filter_verifications(CERTS, "statistics") == []
