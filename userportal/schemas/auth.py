"""
Authentication request schemas.

Field rules (lengths, character classes, password strength) are checked by
the account validation module so every problem is reported per field in one
response; these models only fix the request shape.
"""

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    """Account registration request."""

    username: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str = ""
    first_name: str = ""
    last_name: str = ""


class LoginRequest(BaseModel):
    """Login request. ``username`` may also be the account's email."""

    username: str = Field("", description="Username or email")
    password: str = ""


class RefreshTokenRequest(BaseModel):
    """Token refresh / logout request."""

    refresh_token: str
