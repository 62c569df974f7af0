"""
tests/test_tokens.py - Session token issue/verify
"""
from __future__ import annotations

import jwt
import pytest

from subspace.config import ConfigurationError
from subspace.core.tokens import SessionTokenService

SECRET = "unit-test-secret-0123456789abcdef0123456789"


class Clock:
    def __init__(self, now: float = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def service(clock) -> SessionTokenService:
    return SessionTokenService(SECRET, lifetime_seconds=8 * 60 * 60, clock=clock)


def test_issued_token_round_trips_identity(service, clock):
    token = service.issue("42", "super@subspace.example.com", "superintendent")
    claims = service.verify(token)
    assert claims is not None
    assert claims.user_id == "42"
    assert claims.email == "super@subspace.example.com"
    assert claims.role == "superintendent"
    assert claims.issued_at == int(clock.now)
    assert claims.expires_at == int(clock.now) + 8 * 60 * 60


def test_token_has_three_segments(service):
    assert service.issue("1", "a@b.example.com", "admin").count(".") == 2


@pytest.mark.parametrize("token", [None, "", 12345, "abc", "a.b", "a.b.c.d"])
def test_malformed_tokens_yield_none(service, token):
    assert service.verify(token) is None


def test_verify_failure_is_repeatable(service):
    assert service.verify("not-a-token") is None
    assert service.verify("not-a-token") is None


def test_token_signed_with_other_secret_rejected(service, clock):
    other = SessionTokenService("another-secret-that-is-long-enough-0000", clock=clock)
    assert service.verify(other.issue("1", "a@b.example.com", "admin")) is None


def test_tampered_payload_rejected(service):
    token = service.issue("1", "a@b.example.com", "superintendent")
    header, _, signature = token.split(".")
    forged_payload = jwt.encode(
        {"userId": "1", "email": "a@b.example.com", "role": "admin", "iat": 1, "exp": 9_999_999_999},
        "attacker-secret-attacker-secret-attacker",
    ).split(".")[1]
    assert service.verify(f"{header}.{forged_payload}.{signature}") is None


def test_token_valid_until_expiry_instant(service, clock):
    token = service.issue("1", "a@b.example.com", "admin")
    clock.now += 8 * 60 * 60 - 1
    assert service.verify(token) is not None
    clock.now += 1
    assert service.verify(token) is None


def test_missing_claim_rejected(service, clock):
    token = jwt.encode(
        {"userId": "1", "email": "a@b.example.com", "iat": int(clock.now), "exp": int(clock.now) + 60},
        SECRET,
        algorithm="HS256",
    )
    assert service.verify(token) is None


def test_wrongly_typed_claims_rejected(service, clock):
    now = int(clock.now)
    numeric_user = jwt.encode(
        {"userId": 1, "email": "a@b.example.com", "role": "admin", "iat": now, "exp": now + 60},
        SECRET,
    )
    float_expiry = jwt.encode(
        {"userId": "1", "email": "a@b.example.com", "role": "admin", "iat": now, "exp": now + 60.5},
        SECRET,
    )
    assert service.verify(numeric_user) is None
    assert service.verify(float_expiry) is None


def test_missing_secret_refuses_to_start():
    with pytest.raises(ConfigurationError):
        SessionTokenService(None)
    with pytest.raises(ConfigurationError):
        SessionTokenService("")


def test_short_secret_refuses_to_start():
    with pytest.raises(ConfigurationError):
        SessionTokenService("x" * 31)
    SessionTokenService("x" * 32)
