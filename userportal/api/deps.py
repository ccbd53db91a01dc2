"""
FastAPI dependencies for authentication, authorization, and database sessions.
"""

import uuid
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from userportal.database import async_session_maker
from userportal.kernel.accounts.account_service import AccountService
from userportal.kernel.accounts.repository import AccountRepository
from userportal.kernel.errors import INVALID_TOKEN, ForbiddenError, UnauthorizedError
from userportal.kernel.identity.jwt import get_token_issuer
from userportal.kernel.identity.session import SessionOrchestrator
from userportal.kernel.models import PRIVILEGED_ROLE, Account, RecordScope
from userportal.kernel.pagination import DEFAULT_PAGE_SIZE, PaginationParams


# Security scheme
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that yields one unit of work per request.

    Handlers commit explicitly before building their response; anything
    still pending when the handler raises is rolled back.
    """
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_account(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
) -> Account:
    """Get the active account behind a valid Bearer token or raise 401."""
    if not credentials:
        raise UnauthorizedError("Not authenticated")

    identity = get_token_issuer().validate(credentials.credentials)
    if identity is None:
        raise UnauthorizedError(INVALID_TOKEN)

    account = await AccountRepository(db).find_by_id(
        identity.account_id, scope=RecordScope.ACTIVE
    )
    if account is None:
        raise UnauthorizedError(INVALID_TOKEN)
    return account


CurrentAccount = Annotated[Account, Depends(get_current_account)]


async def require_admin(account: CurrentAccount) -> Account:
    """Require the current account to hold the administrator role."""
    if account.role_name != PRIVILEGED_ROLE.value:
        raise ForbiddenError("Admin access required")
    return account


AdminAccount = Annotated[Account, Depends(require_admin)]


def ensure_self_or_admin(current: Account, target_id: uuid.UUID) -> None:
    """Accounts may act on themselves; administrators on anyone."""
    if current.id != target_id and current.role_name != PRIVILEGED_ROLE.value:
        raise ForbiddenError("You may only access your own account")


def get_pagination(page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> PaginationParams:
    """Pagination from query parameters; out-of-range values are a 422."""
    return PaginationParams(page=page, page_size=page_size)


Pagination = Annotated[PaginationParams, Depends(get_pagination)]


def get_session_orchestrator(db: DbSession) -> SessionOrchestrator:
    return SessionOrchestrator(db)


def get_account_service(db: DbSession) -> AccountService:
    return AccountService(db)


Sessions = Annotated[SessionOrchestrator, Depends(get_session_orchestrator)]
Accounts = Annotated[AccountService, Depends(get_account_service)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)
