from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from noticeboard.errors import InvalidTokenError
from noticeboard.tokens import DEFAULT_TOKEN_TTL, TokenService

SECRET = "tokens-test-secret-with-plenty-of-entropy-0123456789"


def _issued_ago(delta: timedelta) -> TokenService:
    return TokenService(SECRET, clock=lambda: datetime.now(timezone.utc) - delta)


def test_issue_and_verify_round_trip() -> None:
    service = TokenService(SECRET)
    token = service.issue(42)

    assert service.verify(token) == 42


def test_token_expires_exactly_one_hour_after_issue() -> None:
    service = TokenService(SECRET)
    claims = jwt.decode(service.issue(7), SECRET, algorithms=["HS256"])

    assert claims["sub"] == "7"
    assert service.ttl == DEFAULT_TOKEN_TTL
    assert claims["exp"] - claims["iat"] == int(service.ttl.total_seconds()) == 3600


def test_custom_ttl_is_embedded_in_tokens() -> None:
    service = TokenService(SECRET, ttl=timedelta(minutes=5))
    claims = jwt.decode(service.issue(7), SECRET, algorithms=["HS256"])

    assert service.ttl == timedelta(minutes=5)
    assert TokenService(SECRET).ttl == DEFAULT_TOKEN_TTL
    assert claims["exp"] - claims["iat"] == int(service.ttl.total_seconds())


def test_token_accepted_within_ttl() -> None:
    token = _issued_ago(timedelta(minutes=59)).issue(3)

    assert TokenService(SECRET).verify(token) == 3


def test_expired_token_is_rejected() -> None:
    token = _issued_ago(timedelta(hours=1, seconds=5)).issue(3)

    with pytest.raises(InvalidTokenError):
        TokenService(SECRET).verify(token)


def test_token_signed_with_other_secret_is_rejected() -> None:
    forged = TokenService("another-secret-that-is-also-long-enough-0123456789").issue(1)

    with pytest.raises(InvalidTokenError):
        TokenService(SECRET).verify(forged)


@pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c"])
def test_malformed_token_is_rejected(token: str) -> None:
    with pytest.raises(InvalidTokenError):
        TokenService(SECRET).verify(token)


def test_token_with_non_numeric_subject_is_rejected() -> None:
    now = datetime.now(timezone.utc)
    token = jwt.encode({"sub": "abc", "exp": now + timedelta(minutes=5)}, SECRET, algorithm="HS256")

    with pytest.raises(InvalidTokenError):
        TokenService(SECRET).verify(token)


def test_token_without_expiry_is_rejected() -> None:
    token = jwt.encode({"sub": "1"}, SECRET, algorithm="HS256")

    with pytest.raises(InvalidTokenError):
        TokenService(SECRET).verify(token)


def test_requires_secret_and_positive_ttl() -> None:
    with pytest.raises(ValueError):
        TokenService("")
    with pytest.raises(ValueError):
        TokenService(SECRET, ttl=timedelta(0))
