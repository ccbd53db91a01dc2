"""
Pydantic schemas for API request/response validation.
"""

from userportal.schemas.account import AccountUpdateRequest
from userportal.schemas.auth import LoginRequest, RefreshTokenRequest, RegisterRequest
from userportal.schemas.common import ErrorResponse, HealthResponse, SuccessResponse

__all__ = [
    # Auth
    "RegisterRequest",
    "LoginRequest",
    "RefreshTokenRequest",
    # Account
    "AccountUpdateRequest",
    # Common
    "ErrorResponse",
    "SuccessResponse",
    "HealthResponse",
]
