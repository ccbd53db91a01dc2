"""
Pytest fixtures for the User Portal identity tests.
"""

import os
import tempfile
from typing import AsyncGenerator, Awaitable, Callable

# Settings are read once per process; point them at throwaway resources
# before anything imports userportal.
_TMP_DIR = tempfile.mkdtemp(prefix="userportal-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'app.db')}"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only-0123456789"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from userportal.config import get_settings

get_settings.cache_clear()

from userportal.database import build_engine, build_session_maker, init_db
from userportal.kernel.accounts.lifecycle import AccountLifecycleGuard
from userportal.kernel.identity.jwt import TokenIssuer
from userportal.kernel.identity.password import PasswordHasher
from userportal.kernel.models import Account, RoleName

TEST_PASSWORD = "TestPassword123"
ADMIN_PASSWORD = "AdminPass123"

AccountFactory = Callable[..., Awaitable[Account]]


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the schema and built-in roles."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'identity.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory; each session stands for one request's unit of work."""
    return build_session_maker(db_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def hasher() -> PasswordHasher:
    """Cheap bcrypt cost for tests."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def token_issuer() -> TokenIssuer:
    """Token issuer using the test settings."""
    return TokenIssuer()


@pytest.fixture
def account_factory(session_maker, hasher: PasswordHasher) -> AccountFactory:
    """Persist and commit an account; returns it detached."""

    async def _create(
        username: str,
        *,
        role: RoleName = RoleName.USER,
        password: str = TEST_PASSWORD,
        email: str | None = None,
        first_name: str = "Test",
        last_name: str = "User",
    ) -> Account:
        async with session_maker() as session:
            guard = AccountLifecycleGuard(session)
            role_row = await guard.roles.get_by_name(role)
            account = Account(
                username=username,
                email=email or f"{username.lower()}@example.com",
                password_hash=hasher.hash(password),
                first_name=first_name,
                last_name=last_name,
                role_id=role_row.id,
            )
            account.role = role_row
            guard.prepare_new(account)
            await guard.accounts.insert(account)
            await session.commit()
            return account

    return _create


@pytest_asyncio.fixture
async def test_user(account_factory: AccountFactory) -> Account:
    """Create a regular test account."""
    return await account_factory("testuser", first_name="Test", last_name="User")


@pytest_asyncio.fixture
async def test_admin(account_factory: AccountFactory) -> Account:
    """Create a test administrator."""
    return await account_factory(
        "admin",
        role=RoleName.ADMIN,
        password=ADMIN_PASSWORD,
        first_name="Ada",
        last_name="Admin",
    )


@pytest.fixture
def auth_headers(test_user: Account, token_issuer: TokenIssuer) -> dict:
    """Bearer headers for the regular test account."""
    return {"Authorization": f"Bearer {token_issuer.issue(test_user).token}"}


@pytest.fixture
def admin_headers(test_admin: Account, token_issuer: TokenIssuer) -> dict:
    """Bearer headers for the test administrator."""
    return {"Authorization": f"Bearer {token_issuer.issue(test_admin).token}"}
