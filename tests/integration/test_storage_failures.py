"""Integration tests for storage failures surfacing as InternalError."""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from userportal.database import build_session_maker
from userportal.kernel.accounts.lifecycle import AccountLifecycleGuard
from userportal.kernel.errors import INTERNAL_ERROR, InternalError
from userportal.kernel.identity.session import SessionOrchestrator
from userportal.kernel.models import RecordScope

ENGINE_MESSAGE = "database is locked"
BOB = ("bob", "bob@example.com", "Passw0rd!", "Passw0rd!", "Bob", "B")


class LockedSession(AsyncSession):
    """Every statement fails as if another writer held the database."""

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT accounts", {}, Exception(ENGINE_MESSAGE))


class FailingCommitSession(AsyncSession):
    async def commit(self) -> None:
        raise OperationalError("COMMIT", {}, Exception(ENGINE_MESSAGE))


def _assert_generic(exc: InternalError) -> None:
    assert exc.message == INTERNAL_ERROR
    assert exc.to_dict() == {"detail": INTERNAL_ERROR, "code": "internal_error"}
    assert ENGINE_MESSAGE not in str(exc)
    assert isinstance(exc.__cause__, OperationalError)


@pytest.fixture
def session_maker_of(db_engine):
    def _make(session_class):
        maker = build_session_maker(db_engine)
        maker.class_ = session_class
        return maker

    return _make


@pytest.mark.asyncio
async def test_login_storage_failure(session_maker_of, hasher, token_issuer, test_user):
    async with session_maker_of(LockedSession)() as session:
        orchestrator = SessionOrchestrator(session, hasher=hasher, token_issuer=token_issuer)
        with pytest.raises(InternalError) as exc_info:
            await orchestrator.login(test_user.username, "TestPassword123")

    _assert_generic(exc_info.value)


@pytest.mark.asyncio
async def test_register_storage_failure(session_maker_of, hasher, token_issuer):
    async with session_maker_of(LockedSession)() as session:
        orchestrator = SessionOrchestrator(session, hasher=hasher, token_issuer=token_issuer)
        with pytest.raises(InternalError) as exc_info:
            await orchestrator.register(*BOB)

    _assert_generic(exc_info.value)


@pytest.mark.asyncio
async def test_commit_failure_persists_nothing(session_maker_of, session_maker, hasher, token_issuer):
    async with session_maker_of(FailingCommitSession)() as session:
        orchestrator = SessionOrchestrator(session, hasher=hasher, token_issuer=token_issuer)
        await orchestrator.register(*BOB)
        with pytest.raises(InternalError) as exc_info:
            await orchestrator.commit()
        await session.rollback()

    _assert_generic(exc_info.value)
    async with session_maker() as session:
        guard = AccountLifecycleGuard(session)
        assert await guard.accounts.username_in_use("bob", scope=RecordScope.ALL) is False
