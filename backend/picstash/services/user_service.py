"""
User service for registration and login.
"""
import asyncio
import logging
import re
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from picstash.auth.passwords import hash_password, verify_password
from picstash.auth.tokens import create_session_token
from picstash.config import settings
from picstash.errors import AuthError, ValidationError
from picstash.models.user import User
from picstash.utils.logging import log_user_registered

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class UserService:
    """Service for account business logic."""

    @staticmethod
    async def register(db: AsyncSession, email: Optional[str], password: Optional[str]) -> User:
        """
        Create an account.

        Raises:
            ValidationError: Missing fields, invalid email, weak password or duplicate account
        """
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password required")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format")
        if len(password) < settings.password_min_length:
            raise ValidationError(f"Weak password (>={settings.password_min_length} chars)")

        if await db.get(User, email) is not None:
            raise ValidationError("User already exists")

        # bcrypt is deliberately slow; keep it off the event loop
        password_hash = await asyncio.to_thread(hash_password, password)

        user = User(email=email, password_hash=password_hash)
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # Concurrent registration of the same email
            await db.rollback()
            raise ValidationError("User already exists")
        await db.refresh(user)

        log_user_registered(logger, user_id=email)
        return user

    @staticmethod
    async def login(db: AsyncSession, email: Optional[str], password: Optional[str]) -> str:
        """
        Check credentials and issue a session token.

        Unknown email and wrong password are indistinguishable to the caller.

        Raises:
            AuthError: Invalid credentials
        """
        email = normalize_email(email)
        if not email or not password:
            raise AuthError("Invalid credentials")

        user = await db.get(User, email)
        if user is None:
            raise AuthError("Invalid credentials")

        if not await asyncio.to_thread(verify_password, password, user.password_hash):
            raise AuthError("Invalid credentials")

        return create_session_token(user.email)
