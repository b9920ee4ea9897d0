from __future__ import annotations

from dataclasses import replace

import jwt
import pytest

from core.security import (
    RateLimiter, hash_password, issue_jwt, needs_rehash, verify_jwt, verify_password,
)


def test_hash_and_verify():
    h = hash_password("correct horse", cost=4)
    assert verify_password("correct horse", h)
    assert not verify_password("wrong horse", h)
    assert not verify_password("correct horse", "")
    assert not verify_password("correct horse", "not-a-bcrypt-hash")


def test_long_passwords_are_not_truncated():
    base = "x" * 80
    h = hash_password(base + "A", cost=4)
    assert not verify_password(base + "B", h)


def test_needs_rehash():
    h = hash_password("pw", cost=4)
    assert needs_rehash(h, cost=5)
    assert not needs_rehash(h, cost=4)
    assert needs_rehash("garbage", cost=4)


def test_jwt_round_trip(settings):
    token = issue_jwt(settings, "uid-1", extra={"email": "a@x.io"})
    payload = verify_jwt(settings, token)
    assert payload["sub"] == "uid-1"
    assert payload["email"] == "a@x.io"
    assert payload["role"] == "admin"


def test_jwt_rejects_other_secret(settings):
    token = issue_jwt(settings, "uid-1")
    with pytest.raises(jwt.InvalidTokenError):
        verify_jwt(replace(settings, jwt_secret="other"), token)


def test_jwt_rejects_expired(settings):
    token = issue_jwt(replace(settings, jwt_ttl_seconds=-10), "uid-1")
    with pytest.raises(jwt.ExpiredSignatureError):
        verify_jwt(settings, token)


def test_jwt_requires_secret(settings):
    with pytest.raises(RuntimeError):
        issue_jwt(replace(settings, jwt_secret=""), "uid-1")


def test_rate_limiter_window():
    rl = RateLimiter(max_attempts=3, window_seconds=60)
    assert all(rl.allow("k") for _ in range(3))
    assert not rl.allow("k")
    assert rl.allow("other")
    rl.reset("k")
    assert rl.allow("k")


def test_rate_limiter_retry_after_with_clock():
    now = [1000.0]
    rl = RateLimiter(max_attempts=2, window_seconds=60, clock=lambda: now[0])
    assert rl.retry_after("k") == 0.0
    rl.allow("k")
    now[0] += 10
    rl.allow("k")
    assert not rl.allow("k")
    assert rl.retry_after("k") == 50.0
    now[0] += 51
    assert rl.allow("k")
    rl.clear()
    assert rl.retry_after("k") == 0.0
