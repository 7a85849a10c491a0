"""
FastAPI dependencies for authentication.

get_current_user turns the bearer token into a User. Every /api/payments route
declares it, so the ledger only ever sees an already-authenticated user id.
"""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tavern_ledger.config import settings
from tavern_ledger.database import get_db, store_operation
from tavern_ledger.models.user import User
from tavern_ledger.security import decode_access_token


# Reads "Authorization: Bearer <token>". tokenUrl feeds Swagger UI's Authorize button.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT token, then return the corresponding User.

    Raises:
        HTTPException 401: If the token is invalid, expired, or the user
            doesn't exist or is deactivated.
        StoreError: The user lookup itself failed.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        user_id = uuid.UUID(user_id_str)
    except (JWTError, ValueError):
        raise credentials_exception

    with store_operation("authenticate user"):
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user
