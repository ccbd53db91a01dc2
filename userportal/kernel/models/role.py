"""
Role model: named permission tiers referenced by accounts.
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from userportal.kernel.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from userportal.kernel.models.account import Account


class RoleName(str, Enum):
    """Built-in roles."""
    ADMIN = "Admin"
    USER = "User"


# Role given to self-registered accounts
DEFAULT_ROLE = RoleName.USER
# Role whose last active holder cannot be deleted
PRIVILEGED_ROLE = RoleName.ADMIN


class Role(Base, TimestampMixin):
    """Permission tier. Name is unique."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    accounts: Mapped[List["Account"]] = relationship(
        "Account",
        back_populates="role",
    )

    def __repr__(self) -> str:
        return f"<Role {self.name}>"
