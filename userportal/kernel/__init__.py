"""
Identity kernel.

Foundational components behind every request:
- Identity Core (password hashing, access tokens, refresh tokens, sessions)
- Account Core (storage, lifecycle invariants, management)

Invariants:
- Active usernames and emails are unique, case-insensitively
- The last active administrator cannot be deleted
- Refresh tokens are redeemed at most once
"""

from userportal.kernel.models import (
    Account,
    RecordScope,
    RefreshToken,
    Role,
    RoleName,
)

__all__ = [
    # Accounts & roles
    "Account",
    "Role",
    "RoleName",
    "RecordScope",
    # Tokens
    "RefreshToken",
]
