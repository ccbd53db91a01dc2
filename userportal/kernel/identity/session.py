"""
Session orchestration: login, registration and token renewal.

Each flow only flushes. The caller commits with ``commit()`` once the bundle
has been built and before it is handed out, so a failure anywhere, the
commit included, leaves no account, last-login touch or refresh token behind
and no tokens reach the client.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Literal, Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from userportal.kernel.accounts.lifecycle import AccountLifecycleGuard
from userportal.kernel.accounts.summary import AccountSummary
from userportal.kernel.accounts.validation import normalize_email, validate_registration
from userportal.kernel.errors import (
    INVALID_CREDENTIALS,
    INVALID_REFRESH_TOKEN,
    InternalError,
    UnauthorizedError,
    storage_errors,
)
from userportal.kernel.identity.jwt import TokenIssuer, get_token_issuer
from userportal.kernel.identity.password import PasswordHasher, get_password_hasher
from userportal.kernel.identity.refresh_tokens import RefreshTokenManager
from userportal.kernel.models import Account, RecordScope, utcnow
from userportal.logging_config import get_logger

logger = get_logger(__name__)


class SessionBundle(BaseModel):
    """Everything a client needs after login, registration or refresh."""

    access_token: str
    refresh_token: str
    expires_at: datetime
    refresh_expires_at: datetime
    token_type: Literal["Bearer"] = "Bearer"
    user: AccountSummary


class SessionOrchestrator:
    """
    Composes the hasher, token issuer, refresh tokens and lifecycle guard
    into the login and registration flows.
    """

    def __init__(
        self,
        session: AsyncSession,
        hasher: Optional[PasswordHasher] = None,
        token_issuer: Optional[TokenIssuer] = None,
        refresh_lifetime: Optional[timedelta] = None,
    ):
        self.session = session
        self.hasher = hasher or get_password_hasher()
        self.token_issuer = token_issuer or get_token_issuer()
        self.guard = AccountLifecycleGuard(session)
        self.refresh_tokens = RefreshTokenManager(session, lifetime=refresh_lifetime)

    async def login(self, username_or_email: str, password: str) -> SessionBundle:
        """
        Authenticate with a username or email and a password.

        Raises:
            UnauthorizedError: unknown account or wrong password, with the
                same message either way
            InternalError: storage failure
        """
        if not username_or_email or not password:
            raise UnauthorizedError(INVALID_CREDENTIALS)

        async with storage_errors("login"):
            account = await self.guard.accounts.find_by_username_or_email(
                username_or_email, scope=RecordScope.ACTIVE
            )

        if account is None:
            await asyncio.to_thread(self.hasher.dummy_verify, password)
            logger.warning("Login failed: unknown account")
            raise UnauthorizedError(INVALID_CREDENTIALS)

        verified = await asyncio.to_thread(
            self.hasher.verify, password, account.password_hash
        )
        if not verified:
            logger.warning(
                "Login failed: wrong password",
                extra={"account_id": str(account.id)},
            )
            raise UnauthorizedError(INVALID_CREDENTIALS)

        async with storage_errors("login"):
            if self.hasher.needs_rehash(account.password_hash):
                account.password_hash = await asyncio.to_thread(
                    self.hasher.hash, password
                )
                logger.info(
                    "Password digest upgraded",
                    extra={"account_id": str(account.id)},
                )
            await self.guard.accounts.touch_last_login(account, utcnow())
            bundle = await self._issue_bundle(account)

        logger.info("Login succeeded", extra={"account_id": str(account.id)})
        return bundle

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        confirm_password: str,
        first_name: str,
        last_name: str,
    ) -> SessionBundle:
        """
        Create an account with the default role and open a session for it.

        Raises:
            ValidationError: malformed input, keyed by field
            ConflictError: username or email held by an active account
            InternalError: default role missing or storage failure
        """
        validate_registration(
            username, email, password, confirm_password, first_name, last_name
        )
        username = username.strip()
        email = normalize_email(email)

        async with storage_errors("registration"):
            await self.guard.ensure_registration_unique(username, email)
            role = await self.guard.roles.get_default_role()
            if role is None:
                logger.error("Default role is not seeded")
                raise InternalError()

            password_hash = await asyncio.to_thread(self.hasher.hash, password)
            account = Account(
                username=username,
                email=email,
                password_hash=password_hash,
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                role_id=role.id,
            )
            account.role = role
            self.guard.prepare_new(account)
            await self.guard.accounts.insert(account)
            bundle = await self._issue_bundle(account)

        logger.info("Account registered", extra={"account_id": str(account.id)})
        return bundle

    async def refresh(self, refresh_token: str) -> SessionBundle:
        """
        Spend a refresh token and issue a new access/refresh pair.

        Raises:
            UnauthorizedError: token unknown, expired, used or invalidated,
                or its account is no longer active
        """
        async with storage_errors("token refresh"):
            account_id = await self.refresh_tokens.redeem(refresh_token)
            if account_id is None:
                raise UnauthorizedError(INVALID_REFRESH_TOKEN)

            account = await self.guard.accounts.find_by_id(
                account_id, scope=RecordScope.ACTIVE
            )
            if account is None:
                raise UnauthorizedError(INVALID_REFRESH_TOKEN)

            return await self._issue_bundle(account)

    async def logout(self, refresh_token: str) -> None:
        """Invalidate a refresh token. Unknown or spent tokens are ignored."""
        async with storage_errors("logout"):
            await self.refresh_tokens.invalidate(refresh_token)

    async def commit(self) -> None:
        """
        Commit the flushed work of the current flow.

        Raises:
            InternalError: the commit failed; nothing was persisted
        """
        async with storage_errors("commit"):
            await self.session.commit()

    async def _issue_bundle(self, account: Account) -> SessionBundle:
        access = self.token_issuer.issue(account)
        refresh = await self.refresh_tokens.create(account.id)
        return SessionBundle(
            access_token=access.token,
            refresh_token=refresh.token,
            expires_at=access.expires_at,
            refresh_expires_at=refresh.expires_at,
            user=AccountSummary.from_account(account),
        )
