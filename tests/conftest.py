from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import pytest

from core import audit
from core.config import Settings
from core.errors import StoreError
from core.identity import AdminDirectory, login_rate_limiter
from core.records import RecordRepository
from core.store import CERTIFICATES, PROFILES, JsonDocumentStore

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "s3cret-pass"

PROFILES_SEED: Dict[str, Dict[str, Any]] = {
    "u1": {"full_name": "Alice Johnson", "email": "alice@example.com", "student_id": "S1001",
           "institution": "Northfield University", "department": "CS"},
    "u2": {"full_name": "Bob Lee", "email": "bob@example.com", "student_id": "S1002"},
    "u3": {"email": "carol@example.com"},
}

CERTIFICATES_SEED: Dict[str, Dict[str, Any]] = {
    "c1": {"user_email": "alice@example.com", "student_name": "Alice Johnson",
           "certificate_title": "Machine Learning", "certificate_type": "Course",
           "institution_name": "Northfield University", "verification_status": "VERIFIED",
           "score": 95, "image_url": "https://img.example.com/c1.png", "timestamp": 1710057600000},
    "c2": {"user_email": "alice@example.com", "student_name": "Alice Johnson",
           "certificate_title": "Data Bootcamp", "certificate_type": "Bootcamp",
           "institution_name": "CodeCamp", "verification_status": "pending",
           "score": "82", "image_path": "certs/c2.png", "timestamp": 1714608000000},
    "c3": {"user_email": "bob@example.com", "student_name": "Bob Lee",
           "certificate_title": "Statistics Honors", "certificate_type": "Academic",
           "institution_name": "Lakeside College", "verification_status": "REJECTED",
           "score": 55, "remarks": "Seal mismatch", "timestamp": "2024-05-20T00:00:00Z"},
}


@pytest.fixture(autouse=True)
def _isolate(tmp_path: Path):
    audit.configure(tmp_path / "audit")
    login_rate_limiter.clear()
    yield
    login_rate_limiter.clear()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        secret_key="test-secret",
        jwt_secret="test-jwt-secret",
        bcrypt_cost=4,
    )


@pytest.fixture
def store(settings: Settings) -> JsonDocumentStore:
    s = JsonDocumentStore(settings.data_dir)
    for doc_id, data in PROFILES_SEED.items():
        s.set(PROFILES, doc_id, data)
    for doc_id, data in CERTIFICATES_SEED.items():
        s.set(CERTIFICATES, doc_id, data)
    return s


@pytest.fixture
def empty_store(tmp_path: Path) -> JsonDocumentStore:
    return JsonDocumentStore(tmp_path / "empty")


@pytest.fixture
def repo(store: JsonDocumentStore) -> RecordRepository:
    return RecordRepository(store)


@pytest.fixture
def directory(store: JsonDocumentStore, settings: Settings) -> AdminDirectory:
    return AdminDirectory(store, settings)


@pytest.fixture
def admin_uid(directory: AdminDirectory, settings: Settings) -> str:
    return directory.sign_up({
        "display_name": "Root Admin",
        "email": ADMIN_EMAIL,
        "password": ADMIN_PASSWORD,
        "confirm_password": ADMIN_PASSWORD,
        "phone": "",
        "admin_code": settings.admin_registration_code,
    })


class FailingDeleteStore(JsonDocumentStore):
    """Fails the delete of selected certificate ids, succeeds otherwise."""

    def __init__(self, data_dir: Path, fail_ids: List[str]):
        super().__init__(data_dir)
        self.fail_ids = set(fail_ids)
        self.delete_calls: List[str] = []

    def delete(self, collection: str, doc_id: str) -> None:
        self.delete_calls.append(doc_id)
        if collection == CERTIFICATES and doc_id in self.fail_ids:
            raise StoreError(f"simulated failure deleting {doc_id}")
        super().delete(collection, doc_id)


class UnavailableStore(JsonDocumentStore):
    """Every read fails, as when the backend is unreachable."""

    def list_all(self, collection, limit=None):
        raise StoreError("backend unreachable")

    def get(self, collection, doc_id):
        raise StoreError("backend unreachable")

    def query_eq(self, collection, field_name, value):
        raise StoreError("backend unreachable")
