"""
Account endpoints: register and login.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from picstash.database import get_db
from picstash.schemas.auth import Credentials, MessageResponse, TokenResponse
from picstash.services.user_service import UserService

router = APIRouter()


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def register(
    credentials: Credentials,
    db: AsyncSession = Depends(get_db)
):
    """
    Create an account.
    Returns 400 for missing fields, invalid email, weak password or an existing account.
    """
    await UserService.register(db, credentials.email, credentials.password)
    return MessageResponse(message="User created")


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: Credentials,
    db: AsyncSession = Depends(get_db)
):
    """
    Exchange email and password for a one-hour session token.
    Returns 401 for any invalid credential.
    """
    token = await UserService.login(db, credentials.email, credentials.password)
    return TokenResponse(token=token)
