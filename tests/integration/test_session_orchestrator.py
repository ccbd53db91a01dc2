"""Integration tests for login, registration, refresh and logout flows."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from userportal.kernel.accounts.lifecycle import AccountLifecycleGuard
from userportal.kernel.errors import (
    INVALID_CREDENTIALS,
    ConflictError,
    UnauthorizedError,
    ValidationError,
)
from userportal.kernel.identity.password import PasswordHasher
from userportal.kernel.identity.session import SessionOrchestrator
from userportal.kernel.models import Account, RecordScope, RefreshToken

TEST_PASSWORD = "TestPassword123"

BOB = ("bob", "bob@x.com", "Passw0rd!", "Passw0rd!", "Bob", "B")


@pytest.fixture
def orchestrator_for(hasher, token_issuer):
    def _make(session, **kwargs):
        kwargs.setdefault("hasher", hasher)
        kwargs.setdefault("token_issuer", token_issuer)
        return SessionOrchestrator(session, **kwargs)

    return _make


async def _register(session_maker, orchestrator_for, *args):
    async with session_maker() as session:
        bundle = await orchestrator_for(session).register(*args)
        await session.commit()
        return bundle


async def _login(session_maker, orchestrator_for, username, password):
    async with session_maker() as session:
        bundle = await orchestrator_for(session).login(username, password)
        await session.commit()
        return bundle


class TestRegisterAndLogin:
    """End-to-end session flows."""

    @pytest.mark.asyncio
    async def test_register_then_login(self, session_maker, orchestrator_for, token_issuer):
        bundle = await _register(session_maker, orchestrator_for, *BOB)

        assert bundle.access_token
        assert bundle.refresh_token
        assert bundle.token_type == "Bearer"
        assert bundle.user.username == "bob"
        assert bundle.user.email == "bob@x.com"
        assert bundle.user.role == "User"
        assert bundle.expires_at < bundle.refresh_expires_at

        identity = token_issuer.validate(bundle.access_token)
        assert identity.account_id == bundle.user.id
        assert identity.role == "User"

        login = await _login(session_maker, orchestrator_for, "bob", "Passw0rd!")
        assert login.user.id == bundle.user.id
        assert login.user.last_login is not None

        with pytest.raises(UnauthorizedError):
            await _login(session_maker, orchestrator_for, "bob", "wrong")

    @pytest.mark.asyncio
    async def test_register_stores_digest_and_normalized_email(self, session_maker, orchestrator_for):
        await _register(
            session_maker, orchestrator_for, " Carol ", " Carol@Example.COM ", "Passw0rd!", "Passw0rd!", "Carol", "C"
        )

        async with session_maker() as session:
            account = (await session.execute(select(Account))).scalars().one()

        assert account.username == "Carol"
        assert account.email == "carol@example.com"
        assert account.password_hash.startswith("$2b$")
        assert "Passw0rd!" not in account.password_hash

    @pytest.mark.asyncio
    async def test_login_by_email_and_any_case(self, session_maker, orchestrator_for):
        await _register(session_maker, orchestrator_for, *BOB)

        assert (await _login(session_maker, orchestrator_for, "BOB@X.COM", "Passw0rd!")).user.username == "bob"
        assert (await _login(session_maker, orchestrator_for, "Bob", "Passw0rd!")).user.username == "bob"

    @pytest.mark.asyncio
    async def test_unknown_user_and_wrong_password_are_indistinguishable(
        self, session_maker, orchestrator_for, test_user
    ):
        with pytest.raises(UnauthorizedError) as wrong_password:
            await _login(session_maker, orchestrator_for, test_user.username, "WrongPassword1")
        with pytest.raises(UnauthorizedError) as unknown_user:
            await _login(session_maker, orchestrator_for, "nobody", "WrongPassword1")

        assert wrong_password.value.message == unknown_user.value.message == INVALID_CREDENTIALS
        assert wrong_password.value.to_dict() == unknown_user.value.to_dict()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,password", [("", TEST_PASSWORD), ("testuser", "")])
    async def test_empty_credentials(self, session_maker, orchestrator_for, test_user, username, password):
        with pytest.raises(UnauthorizedError):
            await _login(session_maker, orchestrator_for, username, password)

    @pytest.mark.asyncio
    async def test_duplicate_username_differing_in_case(self, session_maker, orchestrator_for):
        await _register(session_maker, orchestrator_for, "Alice", "alice@example.com", "Passw0rd!", "Passw0rd!", "Alice", "A")

        with pytest.raises(ConflictError) as exc_info:
            await _register(
                session_maker, orchestrator_for, "alice", "alice2@example.com", "Passw0rd!", "Passw0rd!", "Alice", "B"
            )
        assert "username" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_invalid_registration(self, session_maker, orchestrator_for):
        with pytest.raises(ValidationError) as exc_info:
            await _register(session_maker, orchestrator_for, "bob", "not-an-email", "Passw0rd!", "Mismatch1", "Bob", "B")

        assert set(exc_info.value.errors) == {"email", "confirm_password"}

    @pytest.mark.asyncio
    async def test_failed_registration_leaves_nothing(self, session_maker, orchestrator_for):
        class ExplodingIssuer:
            def issue(self, account):
                raise RuntimeError("signing unavailable")

        async with session_maker() as session:
            with pytest.raises(RuntimeError):
                await orchestrator_for(session, token_issuer=ExplodingIssuer()).register(*BOB)
            await session.rollback()

        async with session_maker() as session:
            guard = AccountLifecycleGuard(session)
            assert await guard.accounts.username_in_use("bob", scope=RecordScope.ALL) is False
            assert (await session.execute(select(RefreshToken))).first() is None

    @pytest.mark.asyncio
    async def test_deleted_account_cannot_log_in(self, session_maker, orchestrator_for, test_user):
        async with session_maker() as session:
            guard = AccountLifecycleGuard(session)
            await guard.soft_delete(await guard.accounts.find_by_id(test_user.id, scope=RecordScope.ACTIVE))
            await session.commit()

        with pytest.raises(UnauthorizedError):
            await _login(session_maker, orchestrator_for, test_user.username, TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_login_upgrades_outdated_digest(self, session_maker, orchestrator_for, account_factory):
        """Digests made with another cost are re-hashed with the configured cost on login."""
        await account_factory("legacy", password=TEST_PASSWORD)

        async with session_maker() as session:
            await orchestrator_for(session, hasher=PasswordHasher(rounds=5)).login("legacy", TEST_PASSWORD)
            await session.commit()

        async with session_maker() as session:
            account = await AccountLifecycleGuard(session).accounts.find_by_username_or_email(
                "legacy", scope=RecordScope.ACTIVE
            )
        assert account.password_hash.startswith("$2b$05$")


class TestRefreshAndLogout:
    """Token renewal flows."""

    @pytest.mark.asyncio
    async def test_refresh_rotates_tokens(self, session_maker, orchestrator_for):
        first = await _register(session_maker, orchestrator_for, *BOB)

        async with session_maker() as session:
            second = await orchestrator_for(session).refresh(first.refresh_token)
            await session.commit()

        assert second.refresh_token != first.refresh_token
        assert second.user.id == first.user.id

        async with session_maker() as session:
            with pytest.raises(UnauthorizedError):
                await orchestrator_for(session).refresh(first.refresh_token)

        async with session_maker() as session:
            third = await orchestrator_for(session).refresh(second.refresh_token)
            await session.commit()
        assert third.access_token

    @pytest.mark.asyncio
    async def test_logout_invalidates_refresh_token(self, session_maker, orchestrator_for):
        bundle = await _register(session_maker, orchestrator_for, *BOB)

        async with session_maker() as session:
            await orchestrator_for(session).logout(bundle.refresh_token)
            await orchestrator_for(session).logout(bundle.refresh_token)
            await session.commit()

        async with session_maker() as session:
            with pytest.raises(UnauthorizedError):
                await orchestrator_for(session).refresh(bundle.refresh_token)

    @pytest.mark.asyncio
    async def test_refresh_for_deleted_account_fails(self, session_maker, orchestrator_for):
        bundle = await _register(session_maker, orchestrator_for, *BOB)
        async with session_maker() as session:
            guard = AccountLifecycleGuard(session)
            await guard.soft_delete(await guard.accounts.find_by_id(bundle.user.id, scope=RecordScope.ACTIVE))
            await session.commit()

        async with session_maker() as session:
            with pytest.raises(UnauthorizedError):
                await orchestrator_for(session).refresh(bundle.refresh_token)

    @pytest.mark.asyncio
    async def test_refresh_with_garbage(self, db_session, orchestrator_for):
        with pytest.raises(UnauthorizedError):
            await orchestrator_for(db_session).refresh("not-a-token")


class TestStoredValues:
    """What comes back from storage matches what was handed out."""

    @pytest.mark.asyncio
    async def test_password_past_bcrypt_limit_is_refused(self, session_maker, orchestrator_for):
        base = "Aa1" + "x" * 69

        with pytest.raises(ValidationError) as exc_info:
            await _register(
                session_maker, orchestrator_for, "bob", "bob@x.com", base + "SECRET1", base + "SECRET1", "Bob", "B"
            )
        assert "password" in exc_info.value.errors

        await _register(session_maker, orchestrator_for, "bob", "bob@x.com", base, base, "Bob", "B")
        with pytest.raises(UnauthorizedError):
            await _login(session_maker, orchestrator_for, "bob", base + "WRONG99")

    @pytest.mark.asyncio
    async def test_timestamps_are_utc_after_reload(self, session_maker, orchestrator_for):
        registered = await _register(session_maker, orchestrator_for, *BOB)
        logged_in = await _login(session_maker, orchestrator_for, "bob", "Passw0rd!")

        assert logged_in.user.created_at == registered.user.created_at
        assert logged_in.user.created_at.utcoffset() == timedelta(0)
        assert logged_in.user.last_login.utcoffset() == timedelta(0)

        async with session_maker() as session:
            account = await AccountLifecycleGuard(session).accounts.find_by_id(
                registered.user.id, scope=RecordScope.ACTIVE
            )
            token = (await session.execute(select(RefreshToken))).scalars().first()

        assert account.updated_at.tzinfo is not None
        assert token.expires_at.utcoffset() == timedelta(0)
        assert token.is_valid()
