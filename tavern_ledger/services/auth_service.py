"""
Authentication service — signup and login business logic.

The ledger only needs to know who is calling; this module issues the JWTs
that the /payments routes resolve back to a User.

Security notes:
  - Passwords are hashed before storage (never stored in plaintext)
  - Login returns the same error for "wrong password" and "email not found"
    to prevent user enumeration attacks
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tavern_ledger.database import store_operation
from tavern_ledger.exceptions import DuplicateEmailError, InvalidCredentialsError
from tavern_ledger.models.user import User
from tavern_ledger.security import hash_password, verify_password, create_access_token

logger = logging.getLogger(__name__)


async def signup(
    db: AsyncSession,
    email: str,
    password: str,
    display_name: str,
) -> tuple[User, str]:
    """
    Register a new user and log them straight in.

    Returns:
        Tuple of (User instance, JWT token string).

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    with store_operation("register user"):
        result = await db.execute(select(User).where(User.email == email))
        if result.scalar_one_or_none():
            raise DuplicateEmailError(email)

        user = User(
            email=email,
            hashed_password=hash_password(password),
            display_name=display_name,
        )
        db.add(user)
        await db.flush()

    logger.info("User registered: user_id=%s", user.id)

    # "sub" (subject) is the standard claim for user identity
    token = create_access_token(data={"sub": str(user.id)})
    return user, token


async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Authenticate a user and return a JWT token.

    Raises:
        InvalidCredentialsError: If email doesn't exist, the password is
            wrong, or the user is deactivated.
    """
    with store_operation("log in"):
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

    # Same error for every case — prevents user enumeration
    if not user:
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    if not user.is_active:
        raise InvalidCredentialsError()

    token = create_access_token(data={"sub": str(user.id)})
    return user, token
