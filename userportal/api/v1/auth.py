"""
Authentication endpoints.
"""

from fastapi import APIRouter, status

from userportal.api.deps import CurrentAccount, Sessions
from userportal.kernel.accounts.summary import AccountSummary
from userportal.kernel.identity.session import SessionBundle
from userportal.schemas.auth import LoginRequest, RefreshTokenRequest, RegisterRequest
from userportal.schemas.common import ErrorResponse, SuccessResponse

router = APIRouter()

_UNAUTHORIZED = {401: {"model": ErrorResponse}}


@router.post(
    "/register",
    response_model=SessionBundle,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def register(data: RegisterRequest, sessions: Sessions):
    """
    Register a new account with the default role.

    Returns a session bundle, the same shape as login.
    """
    bundle = await sessions.register(
        username=data.username,
        email=data.email,
        password=data.password,
        confirm_password=data.confirm_password,
        first_name=data.first_name,
        last_name=data.last_name,
    )
    await sessions.commit()
    return bundle


@router.post("/login", response_model=SessionBundle, responses=_UNAUTHORIZED)
async def login(data: LoginRequest, sessions: Sessions):
    """Authenticate with username (or email) and password."""
    bundle = await sessions.login(data.username, data.password)
    await sessions.commit()
    return bundle


@router.post("/refresh", response_model=SessionBundle, responses=_UNAUTHORIZED)
async def refresh_token(data: RefreshTokenRequest, sessions: Sessions):
    """
    Exchange a refresh token for a new token pair.

    The presented refresh token is spent; a second use is rejected.
    """
    bundle = await sessions.refresh(data.refresh_token)
    await sessions.commit()
    return bundle


@router.post("/logout", response_model=SuccessResponse)
async def logout(data: RefreshTokenRequest, sessions: Sessions):
    """Invalidate a refresh token."""
    await sessions.logout(data.refresh_token)
    await sessions.commit()
    return SuccessResponse(message="Logged out successfully")


@router.get("/me", response_model=AccountSummary, responses=_UNAUTHORIZED)
async def get_current_account_profile(account: CurrentAccount):
    """Get the current account's profile."""
    return AccountSummary.from_account(account)
