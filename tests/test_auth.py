from datetime import timedelta

import pytest
from jose import jwt

from panel.auth import Identity, TokenValidator, Unauthorized, JWT_ALGORITHM

from conftest import SECRET


def test_token_roundtrip_recovers_claims(validator):
    token = validator.create_token(42, "alice")
    assert validator.validate(token) == Identity(user_id=42, username="alice")


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_malformed_tokens_rejected(validator, token):
    with pytest.raises(Unauthorized):
        validator.validate(token)


def test_wrong_signature_rejected(validator):
    other = TokenValidator("some-other-secret").create_token(1, "admin")
    with pytest.raises(Unauthorized):
        validator.validate(other)


def test_expired_token_rejected(validator):
    token = validator.create_token(1, "admin", expires_in=timedelta(seconds=-30))
    with pytest.raises(Unauthorized):
        validator.validate(token)


@pytest.mark.parametrize("claims", [
    {"username": "admin"},
    {"user_id": 1},
    {"user_id": "1", "username": "admin"},
    {"user_id": True, "username": "admin"},
    {"user_id": 1.5, "username": "admin"},
    {"user_id": 1, "username": 7},
])
def test_missing_or_mistyped_claims_rejected(validator, claims):
    token = jwt.encode(claims, SECRET, algorithm=JWT_ALGORITHM)
    with pytest.raises(Unauthorized):
        validator.validate(token)


def test_integral_float_user_id_accepted(validator):
    token = jwt.encode({"user_id": 3.0, "username": "bob"}, SECRET, algorithm=JWT_ALGORITHM)
    assert validator.validate(token) == Identity(3, "bob")


def test_token_without_exp_accepted(validator):
    token = jwt.encode({"user_id": 5, "username": "ops"}, SECRET, algorithm=JWT_ALGORITHM)
    assert validator.validate(token).username == "ops"


def test_empty_secret_refused():
    with pytest.raises(ValueError):
        TokenValidator("")


def test_me_requires_bearer_token(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Authentication required"


def test_me_rejects_bad_token(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired token"


def test_me_returns_identity(client, token):
    resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json() == {"status": True, "user_id": 1, "username": "admin"}
