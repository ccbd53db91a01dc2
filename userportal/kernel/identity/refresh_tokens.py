"""
Refresh token issuance, single-use redemption and invalidation.
"""

import hashlib
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import and_, update
from sqlalchemy.ext.asyncio import AsyncSession

from userportal.config import get_settings
from userportal.kernel.models import RefreshToken, stamp_audit_fields, utcnow

# 48 random bytes -> 64 url-safe characters
REFRESH_TOKEN_BYTES = 48


class IssuedRefreshToken(BaseModel):
    """The raw token handed to the client; only its digest is stored."""

    model_config = ConfigDict(frozen=True)

    token: str
    expires_at: datetime


def hash_token(token: str) -> str:
    """SHA-256 hex digest used as the storage key for a refresh token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _still_valid(now: datetime):
    return and_(
        RefreshToken.used_at.is_(None),
        RefreshToken.invalidated_at.is_(None),
        RefreshToken.is_active.is_(True),
        RefreshToken.expires_at > now,
    )


class RefreshTokenRepository:
    """Storage operations on the refresh_tokens table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, token: RefreshToken) -> RefreshToken:
        stamp_audit_fields(token, creating=True)
        self.session.add(token)
        await self.session.flush()
        return token

    async def mark_used_if_valid(
        self, token_hash: str, now: datetime
    ) -> Optional[uuid.UUID]:
        """
        Spend a token in one conditional UPDATE.

        The row only matches while it is still valid, so of several concurrent
        callers exactly one sees a matched row.
        """
        result = await self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == token_hash, _still_valid(now))
            .values(used_at=now, updated_at=now)
            .returning(RefreshToken.account_id)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def mark_invalidated(self, token_hash: str, now: datetime) -> bool:
        result = await self.session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.used_at.is_(None),
                RefreshToken.invalidated_at.is_(None),
            )
            .values(invalidated_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def invalidate_all_for_account(
        self, account_id: uuid.UUID, now: datetime
    ) -> int:
        result = await self.session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.account_id == account_id,
                RefreshToken.used_at.is_(None),
                RefreshToken.invalidated_at.is_(None),
            )
            .values(invalidated_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class RefreshTokenManager:
    """
    Issues opaque refresh tokens and enforces at-most-once redemption.

    Tokens are random strings unrelated to the access token.
    """

    def __init__(
        self,
        session: AsyncSession,
        lifetime: Optional[timedelta] = None,
    ):
        self.repository = RefreshTokenRepository(session)
        self.lifetime = (
            lifetime
            if lifetime is not None
            else timedelta(days=get_settings().refresh_token_expire_days)
        )

    async def create(self, account_id: uuid.UUID) -> IssuedRefreshToken:
        """Generate and persist a new refresh token for an account."""
        raw = secrets.token_urlsafe(REFRESH_TOKEN_BYTES)
        expires_at = utcnow() + self.lifetime
        await self.repository.insert(
            RefreshToken(
                account_id=account_id,
                token_hash=hash_token(raw),
                expires_at=expires_at,
            )
        )
        return IssuedRefreshToken(token=raw, expires_at=expires_at)

    async def redeem(self, token: str) -> Optional[uuid.UUID]:
        """
        Spend a refresh token.

        Returns:
            The owning account id, or None if the token is unknown, expired,
            invalidated or already used
        """
        if not token:
            return None
        return await self.repository.mark_used_if_valid(hash_token(token), utcnow())

    async def invalidate(self, token: str) -> None:
        """Invalidate a token outside redemption. Repeated calls are no-ops."""
        if not token:
            return
        await self.repository.mark_invalidated(hash_token(token), utcnow())

    async def invalidate_all(self, account_id: uuid.UUID) -> int:
        """Invalidate every live token of an account; returns how many."""
        return await self.repository.invalidate_all_for_account(account_id, utcnow())
