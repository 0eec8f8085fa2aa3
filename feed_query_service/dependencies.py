"""
FastAPI dependencies for Feed Query Service
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from typing import Optional

from .config import settings
from .schemas import User

security = HTTPBearer()


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> User:
    """
    Validate JWT token and return current user
    """
    token = credentials.credentials

    try:
        # Decode JWT token
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise _credentials_exception()

    user_id = payload.get("sub")
    username: Optional[str] = payload.get("username")
    email: Optional[str] = payload.get("email")

    if user_id is None or username is None:
        raise _credentials_exception()

    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise _credentials_exception()

    return User(id=user_id, username=username, email=email)


async def get_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> str:
    """Raw bearer token, forwarded to downstream services"""
    return credentials.credentials
