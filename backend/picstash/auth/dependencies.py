"""
FastAPI dependencies for authentication.
Provides get_current_user, which verifies the bearer session token.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from picstash.database import get_db
from picstash.errors import AuthError
from picstash.models.user import User
from picstash.auth.tokens import verify_session_token

# HTTPBearer scheme for extracting Authorization header; errors are raised
# here so a missing header is a 401 rather than FastAPI's default 403
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    FastAPI dependency that verifies the session token and returns the User.

    Flow:
    1. Extract Bearer token from Authorization header
    2. Verify signature, expiry and token type
    3. Lookup user by the email in the "sub" claim

    Raises:
        HTTPException 401: If token is missing, invalid, expired, or the user no longer exists
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        email = verify_session_token(credentials.credentials)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await db.get(User, email)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user
