"""
User model.
One row per account, keyed by email. The email is also the owner identity
that prefixes every object key the user uploads.
"""
from sqlalchemy import Column, String, DateTime
from datetime import datetime, timezone

from picstash.models.base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    """Registered user."""

    __tablename__ = "users"

    email = Column(String(255), primary_key=True)
    password_hash = Column(String(255), nullable=False)  # bcrypt hash
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<User(email={self.email})>"
