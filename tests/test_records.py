from __future__ import annotations

import pytest

from core.errors import NotFoundError, PartialDeleteError, StoreError, ValidationError
from core.records import RecordRepository
from core.store import CERTIFICATES, PROFILES
from tests.conftest import CERTIFICATES_SEED, PROFILES_SEED, FailingDeleteStore


def test_list_certificates_normalized(repo):
    certs = {c.id: c for c in repo.list_certificates()}
    assert set(certs) == {"c1", "c2", "c3"}
    assert certs["c2"].verification_status == "PENDING"
    assert certs["c2"].score == 82.0
    assert certs["c2"].image_url == "certs/c2.png"


def test_get_certificate_not_found(repo):
    with pytest.raises(NotFoundError) as ei:
        repo.get_certificate("nope")
    assert ei.value.collection == CERTIFICATES


def test_list_profiles_with_counts(repo):
    users = {u.id: u for u in repo.list_profiles()}
    assert users["u1"].total_certificates == 2
    assert users["u1"].verified_certificates == 1
    assert users["u2"].total_certificates == 1
    assert users["u3"].total_certificates == 0
    assert users["u3"].name == "carol@example.com"


def test_get_profile_with_certificates(repo):
    profile, certs = repo.get_profile("u1")
    assert profile.name == "Alice Johnson"
    assert sorted(c.id for c in certs) == ["c1", "c2"]


def test_list_verifications_excludes_pending(repo):
    assert sorted(c.id for c in repo.list_verifications()) == ["c1", "c3"]


def test_update_status_writes_fields(repo, store):
    cert = repo.update_certificate_status("c2", {"verification_status": "verified", "score": "88", "remarks": " ok "})
    assert cert.verification_status == "VERIFIED"
    assert cert.score == 88.0
    raw = store.get(CERTIFICATES, "c2").data
    assert raw["verification_status"] == "VERIFIED"
    assert raw["remarks"] == "ok"
    assert isinstance(raw["updated_at"], int) and raw["updated_at"] > 0
    # untouched fields survive
    assert raw["certificate_title"] == "Data Bootcamp"


@pytest.mark.parametrize("form", [
    {"verification_status": "VERIFIED", "score": "101"},
    {"verification_status": "VERIFIED", "score": "-1"},
    {"verification_status": "VERIFIED", "score": "abc"},
    {"verification_status": "MAYBE", "score": "50"},
])
def test_update_status_rejects_before_write(repo, store, form):
    before = store.get(CERTIFICATES, "c2").data
    with pytest.raises(ValidationError):
        repo.update_certificate_status("c2", form)
    assert store.get(CERTIFICATES, "c2").data == before


def test_update_status_missing_certificate(repo):
    with pytest.raises(NotFoundError):
        repo.update_certificate_status("ghost", {"verification_status": "VERIFIED", "score": 10})


def test_delete_certificate(repo):
    repo.delete_certificate("c3")
    assert sorted(c.id for c in repo.list_certificates()) == ["c1", "c2"]


def test_delete_user_removes_certificates_then_profile(repo, store):
    deleted = repo.delete_user("u1")
    assert sorted(deleted) == ["c1", "c2"]
    assert store.get(PROFILES, "u1") is None
    assert [c.id for c in repo.list_certificates()] == ["c3"]


def test_delete_user_not_found(repo):
    with pytest.raises(NotFoundError):
        repo.delete_user("ghost")


def test_delete_user_partial_failure_keeps_profile(tmp_path):
    store = FailingDeleteStore(tmp_path / "partial", fail_ids=["k2"])
    store.set(PROFILES, "u9", {"full_name": "Dana", "email": "dana@example.com"})
    for cid in ("k1", "k2", "k3"):
        store.set(CERTIFICATES, cid, {"user_email": "dana@example.com", "certificate_title": cid})
    repo = RecordRepository(store)

    with pytest.raises(PartialDeleteError) as ei:
        repo.delete_user("u9")

    assert ei.value.deleted == ["k1", "k3"]
    assert ei.value.failed == ["k2"]
    assert isinstance(ei.value.cause, StoreError)
    assert [c.id for c in repo.list_certificates()] == ["k2"]
    assert store.get(PROFILES, "u9") is not None
    assert "u9" not in store.delete_calls


def test_sample_certificates_raw(repo):
    samples = repo.sample_certificates(2)
    assert len(samples) == 2
    assert samples[1].data["verification_status"] == "pending"


def test_counts(repo):
    assert repo.count_profiles() == len(PROFILES_SEED)
    assert len(repo.list_certificates()) == len(CERTIFICATES_SEED)


def test_health_check(repo, store):
    assert repo.health_check()["ok"] is True
    store.set(CERTIFICATES, "orphan", {"user_email": "nobody@example.com"})
    result = repo.health_check()
    assert result["ok"] is False
    assert any("orphan" in i for i in result["issues"])
