"""
Account management: lookups, listings, profile updates and deletion.
"""

import asyncio
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from userportal.kernel.accounts.lifecycle import AccountLifecycleGuard
from userportal.kernel.accounts.summary import AccountSummary
from userportal.kernel.accounts.validation import normalize_email, validate_update
from userportal.kernel.errors import NotFoundError, ValidationError, storage_errors
from userportal.kernel.identity.password import PasswordHasher, get_password_hasher
from userportal.kernel.identity.refresh_tokens import RefreshTokenManager
from userportal.kernel.models import Account, RecordScope
from userportal.kernel.pagination import Page, PaginationParams
from userportal.logging_config import get_logger

logger = get_logger(__name__)

ACCOUNT_NOT_FOUND = "Account not found"
CURRENT_PASSWORD_INCORRECT = "Current password is incorrect"


class AccountService:
    """
    Service for account management operations.

    Every read is scoped to active accounts; soft-deleted accounts behave as
    missing.
    """

    def __init__(self, session: AsyncSession, hasher: Optional[PasswordHasher] = None):
        self.session = session
        self.hasher = hasher or get_password_hasher()
        self.guard = AccountLifecycleGuard(session)
        self.refresh_tokens = RefreshTokenManager(session)

    async def get_account(self, account_id: uuid.UUID) -> Account:
        """
        Get an active account by ID.

        Raises:
            NotFoundError: no such account, or it was deleted
        """
        async with storage_errors("account lookup"):
            account = await self.guard.accounts.find_by_id(
                account_id, scope=RecordScope.ACTIVE
            )
        if account is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND)
        return account

    async def list_accounts(self, pagination: PaginationParams) -> Page[AccountSummary]:
        """List active accounts, oldest first."""
        async with storage_errors("account listing"):
            items, total = await self.guard.accounts.list_page(
                pagination, scope=RecordScope.ACTIVE
            )
        return Page[AccountSummary].create(
            [AccountSummary.from_account(a) for a in items], total, pagination
        )

    async def search_accounts(
        self, term: str, pagination: PaginationParams
    ) -> Page[AccountSummary]:
        """
        Case-insensitive substring search over username, email and names.

        Raises:
            ValidationError: empty search term
        """
        if not term or not term.strip():
            raise ValidationError({"q": ["Search term is required"]})
        async with storage_errors("account search"):
            items, total = await self.guard.accounts.search_page(
                term, pagination, scope=RecordScope.ACTIVE
            )
        return Page[AccountSummary].create(
            [AccountSummary.from_account(a) for a in items], total, pagination
        )

    async def update_account(
        self,
        account_id: uuid.UUID,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        profile_picture: Optional[str] = None,
        current_password: Optional[str] = None,
        new_password: Optional[str] = None,
        confirm_new_password: Optional[str] = None,
    ) -> AccountSummary:
        """
        Update profile fields and optionally change the password.

        Empty or omitted fields are left unchanged. A password change needs the
        correct current password and invalidates every refresh token of the
        account.

        Raises:
            ValidationError: malformed input or wrong current password
            NotFoundError: no such active account
            ConflictError: email belongs to another active account
        """
        validate_update(
            email=email,
            first_name=first_name,
            last_name=last_name,
            profile_picture=profile_picture,
            current_password=current_password,
            new_password=new_password,
            confirm_new_password=confirm_new_password,
        )
        account = await self.get_account(account_id)

        password_changed = False
        if new_password:
            matches = await asyncio.to_thread(
                self.hasher.verify, current_password, account.password_hash
            )
            if not matches:
                raise ValidationError({"current_password": [CURRENT_PASSWORD_INCORRECT]})
            account.password_hash = await asyncio.to_thread(
                self.hasher.hash, new_password
            )
            password_changed = True

        async with storage_errors("account update"):
            if email:
                await self.guard.ensure_email_available(account, email)
                account.email = normalize_email(email)
            if first_name and first_name.strip():
                account.first_name = first_name.strip()
            if last_name and last_name.strip():
                account.last_name = last_name.strip()
            if profile_picture:
                account.profile_picture = profile_picture.strip()

            self.guard.prepare_update(account)
            await self.guard.accounts.update(account)

            if password_changed:
                revoked = await self.refresh_tokens.invalidate_all(account.id)
                logger.info(
                    "Password changed",
                    extra={"account_id": str(account.id), "revoked_tokens": revoked},
                )

        return AccountSummary.from_account(account)

    async def commit(self) -> None:
        """
        Commit pending changes.

        Raises:
            InternalError: the commit failed; nothing was persisted
        """
        async with storage_errors("commit"):
            await self.session.commit()

    async def delete_account(self, account_id: uuid.UUID) -> None:
        """
        Soft-delete an account and invalidate its refresh tokens.

        Raises:
            NotFoundError: no such active account
            ConflictError: account is the last active administrator
        """
        account = await self.get_account(account_id)
        async with storage_errors("account deletion"):
            await self.guard.soft_delete(account)
            await self.refresh_tokens.invalidate_all(account.id)
