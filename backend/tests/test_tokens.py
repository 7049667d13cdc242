"""
Tests for session and view tokens and password hashing.
"""
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from picstash.auth.passwords import hash_password, verify_password
from picstash.auth.tokens import (
    create_session_token,
    create_view_token,
    verify_session_token,
    verify_view_token,
)
from picstash.config import settings
from picstash.errors import AuthError

from conftest import ALICE


def _forge(claims: dict, secret: str = None) -> str:
    return jwt.encode(claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


class TestSessionTokens:
    """Tests for session tokens."""

    def test_roundtrip(self):
        assert verify_session_token(create_session_token(ALICE)) == ALICE

    def test_expires_after_ttl(self):
        claims = jwt.decode(
            create_session_token(ALICE), settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
        assert claims["exp"] - claims["iat"] == settings.session_token_ttl

    def test_expired(self):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = _forge({"sub": ALICE, "typ": "session", "iat": past, "exp": past + timedelta(hours=1)})

        with pytest.raises(AuthError, match="Token expired"):
            verify_session_token(token)

    def test_wrong_secret(self):
        token = _forge(
            {"sub": ALICE, "typ": "session", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            secret="someone-else",
        )
        with pytest.raises(AuthError, match="Invalid token"):
            verify_session_token(token)

    def test_missing_subject(self):
        token = _forge({"typ": "session", "exp": datetime.now(timezone.utc) + timedelta(hours=1)})
        with pytest.raises(AuthError):
            verify_session_token(token)

    def test_garbage(self):
        with pytest.raises(AuthError, match="Invalid token"):
            verify_session_token("not.a.token")

    def test_empty(self):
        with pytest.raises(AuthError, match="Missing token"):
            verify_session_token("")

    def test_view_token_not_accepted_as_session(self):
        with pytest.raises(AuthError):
            verify_session_token(create_view_token(ALICE, f"{ALICE}/1-a_cat.png"))


class TestViewTokens:
    """Tests for view tokens."""

    def test_bound_to_key(self):
        key = f"{ALICE}/1-a_cat.png"
        claims = verify_view_token(create_view_token(ALICE, key))

        assert claims["sub"] == ALICE
        assert claims["key"] == key

    def test_short_lived(self):
        claims = jwt.decode(
            create_view_token(ALICE, f"{ALICE}/1-a_cat.png"),
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
        assert claims["exp"] - claims["iat"] == settings.view_token_ttl
        assert settings.view_token_ttl < settings.session_token_ttl

    def test_session_token_not_accepted_as_view(self):
        with pytest.raises(AuthError):
            verify_view_token(create_session_token(ALICE))

    def test_missing_key_claim(self):
        token = _forge({"sub": ALICE, "typ": "view", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)})
        with pytest.raises(AuthError):
            verify_view_token(token)


class TestPasswords:
    """Tests for bcrypt hashing."""

    def test_hash_and_verify(self):
        password_hash = hash_password("correct-horse")

        assert password_hash != "correct-horse"
        assert verify_password("correct-horse", password_hash)
        assert not verify_password("wrong-horse", password_hash)

    def test_salted(self):
        assert hash_password("correct-horse") != hash_password("correct-horse")

    def test_malformed_hash_never_matches(self):
        assert not verify_password("correct-horse", "not-a-bcrypt-hash")
