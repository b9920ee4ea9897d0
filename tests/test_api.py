from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from api.main import app, get_settings, get_store
from core.store import CERTIFICATES, PROFILES
from tests.conftest import ADMIN_EMAIL, ADMIN_PASSWORD, FailingDeleteStore, UnavailableStore


@pytest.fixture
def api(settings, store):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth(api, admin_uid):
    resp = api.post("/auth/token", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def test_health(api):
    assert api.get("/health").json()["ok"] is True


def test_requires_token(api):
    assert api.get("/certificates").status_code == 401
    assert api.get("/certificates", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_bad_credentials(api, admin_uid):
    resp = api.post("/auth/token", json={"email": ADMIN_EMAIL, "password": "wrong-one"})
    assert resp.status_code == 401


def test_rate_limit(api, admin_uid):
    for _ in range(5):
        api.post("/auth/token", json={"email": ADMIN_EMAIL, "password": "wrong-one"})
    resp = api.post("/auth/token", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 429


def test_token_without_secret(api, settings, admin_uid):
    app.dependency_overrides[get_settings] = lambda: replace(settings, jwt_secret="")
    resp = api.post("/auth/token", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 503


def test_stats_and_dashboard(api, auth):
    stats = api.get("/stats", headers=auth).json()
    assert stats["total_certificates"] == 3
    assert stats["by_score"] == {"90-100": 1, "80-89": 1, "70-79": 0, "60-69": 0, "Below 60": 1}
    assert stats["top_institutions"][0]["count"] == 1
    dash = api.get("/dashboard", headers=auth).json()
    assert dash["total_users"] == 3
    assert dash["verified"] == 1
    assert len(dash["recent"]) == 3


def test_certificates_query(api, auth):
    ids = [c["id"] for c in api.get("/certificates", params={"q": "alice"}, headers=auth).json()]
    assert sorted(ids) == ["c1", "c2"]
    ids = [c["id"] for c in api.get("/certificates", params={"status": "pending"}, headers=auth).json()]
    assert ids == ["c2"]


def test_certificate_get_and_404(api, auth):
    assert api.get("/certificates/c1", headers=auth).json()["image_url"] == "https://img.example.com/c1.png"
    resp = api.get("/certificates/ghost", headers=auth)
    assert resp.status_code == 404
    assert resp.json()["id"] == "ghost"


def test_patch_status(api, auth, store):
    resp = api.patch("/certificates/c2/status", headers=auth,
                     json={"verification_status": "rejected", "score": 12, "remarks": "forged"})
    assert resp.status_code == 200
    assert resp.json()["verification_status"] == "REJECTED"
    assert store.get(CERTIFICATES, "c2").data["remarks"] == "forged"


def test_patch_status_invalid(api, auth, store):
    resp = api.patch("/certificates/c2/status", headers=auth,
                     json={"verification_status": "VERIFIED", "score": 120})
    assert resp.status_code == 422
    assert store.get(CERTIFICATES, "c2").data["score"] == "82"


def test_delete_certificate(api, auth, store):
    assert api.delete("/certificates/c1", headers=auth).status_code == 204
    assert store.get(CERTIFICATES, "c1") is None


def test_users(api, auth):
    users = api.get("/users", params={"q": "S1001"}, headers=auth).json()
    assert [u["id"] for u in users] == ["u1"]
    assert users[0]["total_certificates"] == 2
    detail = api.get("/users/u1", headers=auth).json()
    assert len(detail["certificates"]) == 2
    assert api.get("/users/ghost", headers=auth).status_code == 404


def test_delete_user(api, auth, store):
    resp = api.delete("/users/u2", headers=auth)
    assert resp.json() == {"ok": True, "deleted_certificates": ["c3"]}
    assert store.get(PROFILES, "u2") is None


def test_delete_user_partial(api, auth, tmp_path):
    failing = FailingDeleteStore(tmp_path / "api-partial", fail_ids=["k2"])
    failing.set(PROFILES, "u9", {"email": "dana@example.com"})
    for cid in ("k1", "k2", "k3"):
        failing.set(CERTIFICATES, cid, {"user_email": "dana@example.com"})
    app.dependency_overrides[get_store] = lambda: failing
    resp = api.delete("/users/u9", headers=auth)
    assert resp.status_code == 409
    assert resp.json()["failed"] == ["k2"]
    assert failing.get(PROFILES, "u9") is not None


def test_verifications(api, auth):
    items = api.get("/verifications", params={"q": "bob"}, headers=auth).json()
    assert [v["id"] for v in items] == ["c3"]


def test_store_unavailable(api, auth, tmp_path):
    app.dependency_overrides[get_store] = lambda: UnavailableStore(tmp_path / "down")
    resp = api.get("/certificates", headers=auth)
    assert resp.status_code == 503
