"""Integration tests for the account lifecycle guard."""

import asyncio

import pytest

from userportal.kernel.accounts.lifecycle import (
    EMAIL_TAKEN,
    LAST_PRIVILEGED,
    USERNAME_TAKEN,
    AccountLifecycleGuard,
)
from userportal.kernel.errors import ConflictError, NotFoundError
from userportal.kernel.models import Account, RecordScope, RoleName


async def _load(guard: AccountLifecycleGuard, account: Account) -> Account:
    return await guard.accounts.find_by_id(account.id, scope=RecordScope.ALL)


class TestUniqueness:
    """Active usernames and emails are unique, case-insensitively."""

    @pytest.mark.asyncio
    async def test_username_conflict_is_case_insensitive(self, db_session, account_factory):
        await account_factory("Alice")
        guard = AccountLifecycleGuard(db_session)

        with pytest.raises(ConflictError) as exc_info:
            await guard.ensure_registration_unique("alice", "someone-else@example.com")

        assert exc_info.value.errors == {"username": [USERNAME_TAKEN]}

    @pytest.mark.asyncio
    async def test_email_conflict_is_case_insensitive(self, db_session, account_factory):
        await account_factory("alice", email="alice@example.com")
        guard = AccountLifecycleGuard(db_session)

        with pytest.raises(ConflictError) as exc_info:
            await guard.ensure_registration_unique("alice2", "ALICE@Example.com")

        assert exc_info.value.errors == {"email": [EMAIL_TAKEN]}

    @pytest.mark.asyncio
    async def test_both_fields_reported(self, db_session, account_factory):
        await account_factory("alice", email="alice@example.com")
        guard = AccountLifecycleGuard(db_session)

        with pytest.raises(ConflictError) as exc_info:
            await guard.ensure_registration_unique("ALICE", "alice@example.com")

        assert set(exc_info.value.errors) == {"username", "email"}

    @pytest.mark.asyncio
    async def test_unique_index_backs_the_precheck(self, db_session, account_factory, hasher):
        """A duplicate that slips past the pre-check still fails with a conflict."""
        alice = await account_factory("alice")
        guard = AccountLifecycleGuard(db_session)
        duplicate = Account(
            username="ALICE",
            email="other@example.com",
            password_hash=hasher.hash("TestPassword123"),
            first_name="A",
            last_name="B",
            role_id=alice.role_id,
        )
        guard.prepare_new(duplicate)

        with pytest.raises(ConflictError):
            await guard.accounts.insert(duplicate)

    @pytest.mark.asyncio
    async def test_own_email_is_available(self, db_session, test_user):
        guard = AccountLifecycleGuard(db_session)
        account = await _load(guard, test_user)

        await guard.ensure_email_available(account, test_user.email.upper())

    @pytest.mark.asyncio
    async def test_other_accounts_email_conflicts(self, db_session, test_user, test_admin):
        guard = AccountLifecycleGuard(db_session)
        account = await _load(guard, test_user)

        with pytest.raises(ConflictError) as exc_info:
            await guard.ensure_email_available(account, test_admin.email)

        assert exc_info.value.errors == {"email": [EMAIL_TAKEN]}


class TestSoftDelete:
    """Deletion clears the active flag and protects the last administrator."""

    @pytest.mark.asyncio
    async def test_soft_delete_keeps_row(self, db_session, test_user):
        guard = AccountLifecycleGuard(db_session)
        account = await _load(guard, test_user)

        await guard.soft_delete(account)

        assert account.is_active is False
        assert await guard.accounts.find_by_id(test_user.id, scope=RecordScope.ACTIVE) is None
        assert await guard.accounts.find_by_id(test_user.id, scope=RecordScope.ALL) is not None

    @pytest.mark.asyncio
    async def test_soft_delete_stamps_updated_at(self, db_session, test_user):
        guard = AccountLifecycleGuard(db_session)
        account = await _load(guard, test_user)
        before = account.updated_at

        await guard.soft_delete(account)

        assert account.updated_at > before

    @pytest.mark.asyncio
    async def test_deleted_account_frees_username_and_email(self, db_session, test_user, hasher):
        guard = AccountLifecycleGuard(db_session)
        await guard.soft_delete(await _load(guard, test_user))

        await guard.ensure_registration_unique("TestUser", test_user.email)

        replacement = Account(
            username="TestUser",
            email=test_user.email,
            password_hash=hasher.hash("TestPassword123"),
            first_name="New",
            last_name="Holder",
            role_id=test_user.role_id,
        )
        guard.prepare_new(replacement)
        await guard.accounts.insert(replacement)

    @pytest.mark.asyncio
    async def test_delete_twice_is_not_found(self, db_session, test_user):
        guard = AccountLifecycleGuard(db_session)
        account = await _load(guard, test_user)
        await guard.soft_delete(account)

        with pytest.raises(NotFoundError):
            await guard.soft_delete(account)

    @pytest.mark.asyncio
    async def test_sole_admin_cannot_be_deleted(self, db_session, test_admin):
        guard = AccountLifecycleGuard(db_session)
        account = await _load(guard, test_admin)

        with pytest.raises(ConflictError) as exc_info:
            await guard.soft_delete(account)

        assert exc_info.value.message == LAST_PRIVILEGED
        assert account.is_active is True

    @pytest.mark.asyncio
    async def test_one_of_two_admins_can_be_deleted(self, db_session, test_admin, account_factory):
        second = await account_factory("admin2", role=RoleName.ADMIN)
        guard = AccountLifecycleGuard(db_session)
        admin_role = await guard.roles.get_by_name(RoleName.ADMIN)

        await guard.soft_delete(await _load(guard, second))

        remaining = await _load(guard, test_admin)
        assert remaining.is_active is True
        assert await guard.accounts.count_with_role(admin_role.id, scope=RecordScope.ACTIVE) == 1

        with pytest.raises(ConflictError):
            await guard.soft_delete(remaining)

    @pytest.mark.asyncio
    async def test_regular_accounts_are_not_protected(self, db_session, test_user, test_admin):
        """The last-admin rule only applies to administrators."""
        guard = AccountLifecycleGuard(db_session)

        await guard.soft_delete(await _load(guard, test_user))

        assert (await _load(guard, test_admin)).is_active is True

    @pytest.mark.asyncio
    async def test_concurrent_admin_deletions_leave_one_admin(
        self, session_maker, test_admin, account_factory
    ):
        second = await account_factory("admin2", role=RoleName.ADMIN)

        async def delete(target: Account):
            async with session_maker() as session:
                guard = AccountLifecycleGuard(session)
                try:
                    await guard.soft_delete(await _load(guard, target))
                except ConflictError:
                    await session.rollback()
                    return False
                await session.commit()
                return True

        results = await asyncio.gather(delete(test_admin), delete(second))

        assert sorted(results) == [False, True]
        async with session_maker() as session:
            guard = AccountLifecycleGuard(session)
            admin_role = await guard.roles.get_by_name(RoleName.ADMIN)
            assert await guard.accounts.count_with_role(admin_role.id, scope=RecordScope.ACTIVE) == 1


class TestAuditStamping:
    @pytest.mark.asyncio
    async def test_prepare_new_sets_both_timestamps(self, db_session):
        account = Account(
            username="x",
            email="x@example.com",
            password_hash="h",
            first_name="X",
            last_name="Y",
            role_id=1,
        )

        AccountLifecycleGuard(db_session).prepare_new(account)

        assert account.is_active is True
        assert account.created_at == account.updated_at
        assert account.created_at.tzinfo is not None
