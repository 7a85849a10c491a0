"""
Authentication router — signup and login endpoints.

These are the only public (unauthenticated) endpoints in the API.

Endpoints:
  POST /api/auth/signup  — Register a new user and get a token
  POST /api/auth/login   — Authenticate and get a token

Plaintext passwords exist only in memory during request processing; they
are hashed before any database operation and never logged.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tavern_ledger.database import get_db
from tavern_ledger.schemas.auth import (
    UserSignupRequest,
    UserLoginRequest,
    TokenResponse,
    SignupResponse,
)
from tavern_ledger.schemas.common import ApiResponse
from tavern_ledger.services import auth_service

router = APIRouter()


@router.post(
    "/signup",
    response_model=ApiResponse[SignupResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def signup(
    request: UserSignupRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a new user. Returns a JWT token so the user is logged in
    immediately.

    - **email**: Must be a valid email format and not already registered
    - **password**: Minimum 8 characters
    - **display_name**: Required, 1-100 characters
    """
    user, token = await auth_service.signup(
        db=db,
        email=request.email,
        password=request.password,
        display_name=request.display_name,
    )

    return ApiResponse(
        message="User registered successfully",
        data=SignupResponse(
            user_id=user.id,
            email=user.email,
            display_name=user.display_name,
            token=token,
        ),
    )


@router.post(
    "/login",
    response_model=ApiResponse[TokenResponse],
    summary="Authenticate and get a token",
)
async def login(
    request: UserLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate with email and password.

    Include the returned token on every other request:

        Authorization: Bearer <token>
    """
    _, token = await auth_service.login(
        db=db,
        email=request.email,
        password=request.password,
    )

    return ApiResponse(message="Login successful", data=TokenResponse(token=token))
