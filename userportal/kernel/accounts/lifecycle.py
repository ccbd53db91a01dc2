"""
Account lifecycle guard.

Preconditions on account mutations:
- active usernames and emails are unique (case-insensitive)
- an email change is re-checked against every other active account
- the last active privileged account cannot be deleted
- deletion is soft: the row stays, the active flag is cleared
"""

from sqlalchemy.ext.asyncio import AsyncSession

from userportal.kernel.accounts.repository import AccountRepository, RoleRepository
from userportal.kernel.accounts.validation import normalize_email
from userportal.kernel.errors import ConflictError, NotFoundError
from userportal.kernel.models import (
    PRIVILEGED_ROLE,
    Account,
    RecordScope,
    stamp_audit_fields,
    utcnow,
)
from userportal.logging_config import get_logger

logger = get_logger(__name__)

USERNAME_TAKEN = "Username is already registered"
EMAIL_TAKEN = "Email is already registered"
LAST_PRIVILEGED = "Cannot delete the last active administrator"


class AccountLifecycleGuard:
    """Enforces uniqueness, soft-delete and role-protection invariants."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.accounts = AccountRepository(session)
        self.roles = RoleRepository(session)

    async def ensure_registration_unique(self, username: str, email: str) -> None:
        """
        Reject a registration whose username or email belongs to an active account.

        Raises:
            ConflictError: naming each colliding field
        """
        errors: dict[str, list[str]] = {}
        if await self.accounts.username_in_use(username, scope=RecordScope.ACTIVE):
            errors["username"] = [USERNAME_TAKEN]
        if await self.accounts.email_in_use(email, scope=RecordScope.ACTIVE):
            errors["email"] = [EMAIL_TAKEN]
        if errors:
            message = USERNAME_TAKEN if "username" in errors else EMAIL_TAKEN
            raise ConflictError(message, errors=errors)

    async def ensure_email_available(self, account: Account, new_email: str) -> None:
        """Re-check email uniqueness on update, ignoring the account's own row."""
        if normalize_email(new_email) == normalize_email(account.email):
            return
        if await self.accounts.email_in_use(
            new_email, scope=RecordScope.ACTIVE, exclude_id=account.id
        ):
            raise ConflictError(EMAIL_TAKEN, errors={"email": [EMAIL_TAKEN]})

    def prepare_new(self, account: Account) -> Account:
        """Pre-persist step for a new account."""
        account.is_active = True
        stamp_audit_fields(account, creating=True)
        return account

    def prepare_update(self, account: Account) -> Account:
        """Pre-persist step for a changed account."""
        stamp_audit_fields(account)
        return account

    async def soft_delete(self, account: Account) -> None:
        """
        Clear the active flag of an account.

        Raises:
            NotFoundError: account is already inactive
            ConflictError: account is the last active privileged account
        """
        protected_role_id = None
        privileged = await self.roles.get_by_name(PRIVILEGED_ROLE)
        if privileged is not None and account.role_id == privileged.id:
            # Serializes concurrent deletions of privileged accounts on
            # backends with row locks.
            await self.accounts.lock_active_with_role(privileged.id)
            protected_role_id = privileged.id

        deleted = await self.accounts.deactivate(
            account.id, utcnow(), protected_role_id=protected_role_id
        )
        if not deleted:
            await self.session.refresh(account)
            if not account.is_active:
                raise NotFoundError("Account not found")
            logger.warning(
                "Refused to delete last administrator",
                extra={"account_id": str(account.id)},
            )
            raise ConflictError(LAST_PRIVILEGED)

        await self.session.refresh(account)
        logger.info("Account deactivated", extra={"account_id": str(account.id)})
