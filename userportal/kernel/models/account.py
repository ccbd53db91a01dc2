"""
Account and refresh token models for identity management.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from userportal.kernel.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    generate_uuid,
    utcnow,
)
from userportal.kernel.models.role import Role

USERNAME_MAX_LEN = 50
EMAIL_MAX_LEN = 100
NAME_MAX_LEN = 50
PROFILE_PICTURE_MAX_LEN = 2048


class Account(Base, TimestampMixin):
    """
    Account holder.

    Soft-deleted accounts keep their row with ``is_active = False``; they are
    invisible to active-scope queries and do not hold their username/email.
    """

    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    username: Mapped[str] = mapped_column(
        String(USERNAME_MAX_LEN),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(
        String(EMAIL_MAX_LEN),
        nullable=False,
        index=True,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(
        String(NAME_MAX_LEN),
        nullable=False,
    )
    last_name: Mapped[str] = mapped_column(
        String(NAME_MAX_LEN),
        nullable=False,
    )
    profile_picture: Mapped[Optional[str]] = mapped_column(
        String(PROFILE_PICTURE_MAX_LEN),
        nullable=True,
    )
    role_id: Mapped[int] = mapped_column(
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    last_login: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Relationships
    role: Mapped[Role] = relationship(
        Role,
        back_populates="accounts",
        lazy="joined",
        innerjoin=True,
    )
    refresh_tokens: Mapped[List["RefreshToken"]] = relationship(
        "RefreshToken",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def role_name(self) -> str:
        return self.role.name

    def __repr__(self) -> str:
        return f"<Account {self.username}>"


# Uniqueness among active accounts only, case-insensitive
Index(
    "uq_accounts_username_active",
    func.lower(Account.username),
    unique=True,
    sqlite_where=Account.is_active.is_(True),
    postgresql_where=Account.is_active.is_(True),
)
Index(
    "uq_accounts_email_active",
    func.lower(Account.email),
    unique=True,
    sqlite_where=Account.is_active.is_(True),
    postgresql_where=Account.is_active.is_(True),
)


class RefreshToken(Base, TimestampMixin):
    """
    Long-lived renewal token. Only the SHA-256 digest of the bearer string is stored.

    ``created_at`` is the issue time. A token is spent by exactly one of
    ``used_at`` / ``invalidated_at`` being set.
    """

    __tablename__ = "refresh_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    expires_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )
    used_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    invalidated_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    account: Mapped[Account] = relationship(
        Account,
        back_populates="refresh_tokens",
    )

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return (
            self.used_at is None
            and self.invalidated_at is None
            and self.expires_at > now
            and self.is_active
        )

    def __repr__(self) -> str:
        return f"<RefreshToken account={self.account_id} expires={self.expires_at}>"
