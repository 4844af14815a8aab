"""JWTTokenVerifier — subject extraction and uniform rejection."""

import time

import pytest
from jose import jwt

from meshmind.core.errors import AuthenticationError
from meshmind.infrastructure.token_verifier import (
    SESSION_EXPIRED_MESSAGE, JWTTokenVerifier,
)

SECRET = "verifier-secret"


def _token(claims, secret=SECRET):
    return jwt.encode(claims, secret, algorithm="HS256")


def _future():
    return int(time.time()) + 600


def test_user_id_claim_is_subject():
    payload = JWTTokenVerifier(SECRET).verify(
        _token({"userId": "u-1", "email": "a@b.c", "exp": _future()}),
    )

    assert payload.subject_id == "u-1"
    assert payload.email == "a@b.c"


def test_sub_claim_fallback():
    payload = JWTTokenVerifier(SECRET).verify(_token({"sub": "u-2", "exp": _future()}))

    assert payload.subject_id == "u-2"
    assert payload.email is None


@pytest.mark.parametrize("token", [
    _token({"userId": "u", "exp": int(time.time()) - 10}),
    _token({"userId": "u", "exp": _future()}, secret="other-secret"),
    _token({"exp": _future()}),
    "not-a-jwt",
])
def test_rejected_tokens_raise_session_expired(token):
    with pytest.raises(AuthenticationError) as exc_info:
        JWTTokenVerifier(SECRET).verify(token)

    assert exc_info.value.message == SESSION_EXPIRED_MESSAGE
    assert exc_info.value.http_status == 401


def test_unconfigured_secret_rejects_everything():
    with pytest.raises(AuthenticationError):
        JWTTokenVerifier("").verify(_token({"userId": "u", "exp": _future()}))
