"""Bearer token verification tests.

Tokens are minted with python-jose exactly like the auth platform signs them
(HS256, audience "authenticated", subject = user id).
"""

import time
from uuid import uuid4

import pytest
from jose import jwt

from sparklab.services.auth_token import parse_bearer_token, verify_access_token
from sparklab.services.exceptions import AuthenticationError

SECRET = "unit-test-secret"
AUDIENCE = "authenticated"


def encode(claims: dict, secret: str = SECRET) -> str:
    base = {"aud": AUDIENCE, "exp": int(time.time()) + 600}
    base.update(claims)
    return jwt.encode(base, secret, algorithm="HS256")


class TestParseBearerToken:
    def test_extracts_token(self):
        assert parse_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"
        assert parse_bearer_token("bearer   abc") == "abc"

    def test_missing_header(self):
        with pytest.raises(AuthenticationError, match="Missing authorization header"):
            parse_bearer_token(None)

    @pytest.mark.parametrize("header", ["Basic abc", "Bearer", "Bearer   ", "abc"])
    def test_malformed_header(self, header):
        with pytest.raises(AuthenticationError, match="Invalid token"):
            parse_bearer_token(header)


class TestVerifyAccessToken:
    def test_valid_token(self):
        user_id = uuid4()
        token = encode({"sub": str(user_id), "email": "fox@example.com"})

        user = verify_access_token(token, SECRET, AUDIENCE)

        assert user.id == user_id
        assert user.email == "fox@example.com"

    def test_email_is_optional(self):
        user = verify_access_token(encode({"sub": str(uuid4())}), SECRET, AUDIENCE)
        assert user.email == ""

    def test_wrong_secret(self):
        token = encode({"sub": str(uuid4())}, secret="someone-else")
        with pytest.raises(AuthenticationError, match="Invalid token"):
            verify_access_token(token, SECRET, AUDIENCE)

    def test_expired(self):
        token = encode({"sub": str(uuid4()), "exp": int(time.time()) - 60})
        with pytest.raises(AuthenticationError):
            verify_access_token(token, SECRET, AUDIENCE)

    def test_wrong_audience(self):
        token = encode({"sub": str(uuid4()), "aud": "anon"})
        with pytest.raises(AuthenticationError):
            verify_access_token(token, SECRET, AUDIENCE)

    def test_subject_must_be_uuid(self):
        token = encode({"sub": "not-a-uuid"})
        with pytest.raises(AuthenticationError):
            verify_access_token(token, SECRET, AUDIENCE)

    def test_garbage_token(self):
        with pytest.raises(AuthenticationError):
            verify_access_token("garbage", SECRET, AUDIENCE)

    def test_unconfigured_secret_rejects_everything(self):
        token = encode({"sub": str(uuid4())})
        with pytest.raises(AuthenticationError):
            verify_access_token(token, "", AUDIENCE)
