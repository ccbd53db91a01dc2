"""
Public view of an account.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from userportal.kernel.models import Account


class AccountSummary(BaseModel):
    """Account as returned to clients: no password digest, no active flag."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    username: str
    email: str
    first_name: str
    last_name: str
    role: str
    profile_picture: Optional[str] = None
    created_at: datetime
    last_login: Optional[datetime] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountSummary":
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            role=account.role_name,
            profile_picture=account.profile_picture,
            created_at=account.created_at,
            last_login=account.last_login,
        )
