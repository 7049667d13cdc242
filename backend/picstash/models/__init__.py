"""
Database models package.
"""
from picstash.models.base import Base
from picstash.models.user import User

__all__ = [
    "Base",
    "User",
]
