"""
Pydantic schemas for register/login endpoints.
"""
from pydantic import BaseModel
from typing import Optional


class Credentials(BaseModel):
    """Register and login body. Fields are checked by the service so that
    missing values produce the same 400/401 messages as invalid ones."""
    email: Optional[str] = None
    password: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class TokenResponse(BaseModel):
    token: str
