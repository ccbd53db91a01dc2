"""
Identity Core - Authentication and session management.
"""

from userportal.kernel.identity.password import PasswordHasher, get_password_hasher
from userportal.kernel.identity.jwt import (
    IssuedAccessToken,
    TokenIssuer,
    VerifiedIdentity,
    get_token_issuer,
)
from userportal.kernel.identity.refresh_tokens import (
    IssuedRefreshToken,
    RefreshTokenManager,
    RefreshTokenRepository,
)
from userportal.kernel.identity.session import (
    AccountSummary,
    SessionBundle,
    SessionOrchestrator,
)

__all__ = [
    "PasswordHasher",
    "get_password_hasher",
    "TokenIssuer",
    "IssuedAccessToken",
    "VerifiedIdentity",
    "get_token_issuer",
    "RefreshTokenManager",
    "RefreshTokenRepository",
    "IssuedRefreshToken",
    "SessionOrchestrator",
    "SessionBundle",
    "AccountSummary",
]
