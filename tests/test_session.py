from datetime import datetime, timedelta, timezone

import jwt
import pytest

from shelfpulse.errors import Unauthenticated
from shelfpulse.session import SessionGuard
from shelfpulse.tokens import TokenService

SECRET = "test-secret-key-for-shelfpulse-tests"


def test_issue_and_verify_round_trip(tokens):
    assert tokens.verify(tokens.issue(7)) == 7


def test_token_carries_user_id_and_thirty_day_expiry(tokens):
    claims = jwt.decode(tokens.issue(3), SECRET, algorithms=["HS256"])
    assert claims["userId"] == 3
    lifetime = claims["exp"] - claims["iat"]
    assert lifetime == int(timedelta(days=30).total_seconds())


def test_expired_token(tokens):
    past = datetime.now(timezone.utc) - timedelta(days=1)
    token = jwt.encode({"userId": 1, "exp": past}, SECRET, algorithm="HS256")
    with pytest.raises(Unauthenticated) as excinfo:
        tokens.verify(token)
    assert excinfo.value.reason == "token_expired"


@pytest.mark.parametrize(
    "claims,secret",
    [
        ({"userId": 1}, "another-secret-key-for-shelfpulse-tests"),
        ({"sub": "1"}, SECRET),
        ({"userId": "1"}, SECRET),
        ({"userId": 0}, SECRET),
    ],
)
def test_invalid_tokens(tokens, claims, secret):
    claims = dict(claims, exp=datetime.now(timezone.utc) + timedelta(hours=1))
    token = jwt.encode(claims, secret, algorithm="HS256")
    with pytest.raises(Unauthenticated) as excinfo:
        tokens.verify(token)
    assert excinfo.value.reason == "invalid_token"


def test_garbage_token(tokens):
    with pytest.raises(Unauthenticated):
        tokens.verify("not-a-jwt")


def test_guard_resolves_bearer_header(tokens):
    guard = SessionGuard(tokens)
    assert guard.resolve(f"Bearer {tokens.issue(5)}") == 5


@pytest.mark.parametrize("header", [None, "", "Bearer ", "Token abc", f"bearer {TokenService(SECRET).issue(1)}"])
def test_guard_rejects_bad_headers(tokens, header):
    with pytest.raises(Unauthenticated) as excinfo:
        SessionGuard(tokens).resolve(header)
    assert excinfo.value.status_code == 401
