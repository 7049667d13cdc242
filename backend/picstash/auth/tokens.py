"""
Session and view tokens (PyJWT, HS256).

Two token types share the signing secret but are never interchangeable:
- session: issued at login, sent as a bearer token, valid for one hour
- view:    short-lived, bound to a single object key, passed as ?token=
           so images can be embedded where no session storage exists
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from picstash.config import settings
from picstash.errors import AuthError

SESSION_TOKEN = "session"
VIEW_TOKEN = "view"


def _encode(claims: dict, ttl: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {**claims, "iat": now, "exp": now + timedelta(seconds=ttl)}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _decode(token: str, expected_type: str) -> dict:
    """
    Verify signature, expiry and token type.

    Raises:
        AuthError: If the token is missing, invalid, expired or of another type
    """
    if not token:
        raise AuthError("Missing token")
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")

    if claims.get("typ") != expected_type:
        raise AuthError("Invalid token")
    return claims


def create_session_token(email: str, ttl: Optional[int] = None) -> str:
    """Issue a session token for a logged-in user."""
    return _encode({"sub": email, "typ": SESSION_TOKEN}, ttl or settings.session_token_ttl)


def verify_session_token(token: str) -> str:
    """
    Verify a session token.

    Returns:
        The user's email
    """
    return _decode(token, SESSION_TOKEN)["sub"]


def create_view_token(email: str, key: str, ttl: Optional[int] = None) -> str:
    """Issue a view token granting inline access to one object."""
    return _encode({"sub": email, "typ": VIEW_TOKEN, "key": key}, ttl or settings.view_token_ttl)


def verify_view_token(token: str) -> dict:
    """
    Verify a view token.

    Returns:
        Claims with "sub" (owner email) and "key" (the only viewable object)
    """
    claims = _decode(token, VIEW_TOKEN)
    if not claims.get("key"):
        raise AuthError("Invalid token")
    return claims
