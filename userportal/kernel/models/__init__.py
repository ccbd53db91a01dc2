"""
Kernel Data Models

SQLAlchemy models for accounts, roles and refresh tokens.
"""

from userportal.kernel.models.base import (
    Base,
    RecordScope,
    TimestampMixin,
    UTCDateTime,
    generate_uuid,
    stamp_audit_fields,
    utcnow,
)
from userportal.kernel.models.role import DEFAULT_ROLE, PRIVILEGED_ROLE, Role, RoleName
from userportal.kernel.models.account import Account, RefreshToken

__all__ = [
    # Base
    "Base",
    "RecordScope",
    "TimestampMixin",
    "UTCDateTime",
    "generate_uuid",
    "stamp_audit_fields",
    "utcnow",
    # Roles
    "Role",
    "RoleName",
    "DEFAULT_ROLE",
    "PRIVILEGED_ROLE",
    # Accounts
    "Account",
    "RefreshToken",
]
