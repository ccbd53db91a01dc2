"""
Account management endpoints.
"""

import uuid

from fastapi import APIRouter, Query

from userportal.api.deps import (
    Accounts,
    AdminAccount,
    CurrentAccount,
    Pagination,
    ensure_self_or_admin,
)
from userportal.kernel.accounts.summary import AccountSummary
from userportal.kernel.pagination import Page
from userportal.logging_config import get_logger
from userportal.schemas.account import AccountUpdateRequest
from userportal.schemas.common import SuccessResponse

router = APIRouter()
logger = get_logger(__name__)


@router.get("", response_model=Page[AccountSummary])
async def list_accounts(_: AdminAccount, pagination: Pagination, accounts: Accounts):
    """List active accounts (admin only)."""
    return await accounts.list_accounts(pagination)


# Declared before /{account_id} so "search" is not parsed as an id
@router.get("/search", response_model=Page[AccountSummary])
async def search_accounts(
    _: AdminAccount,
    pagination: Pagination,
    accounts: Accounts,
    q: str = Query("", description="Matched against username, email and names"),
):
    """Search active accounts (admin only)."""
    return await accounts.search_accounts(q, pagination)


@router.get("/{account_id}", response_model=AccountSummary)
async def get_account(account_id: uuid.UUID, current: CurrentAccount, accounts: Accounts):
    """Get an account profile (self or admin)."""
    ensure_self_or_admin(current, account_id)
    return AccountSummary.from_account(await accounts.get_account(account_id))


@router.put("/{account_id}", response_model=AccountSummary)
async def update_account(
    account_id: uuid.UUID,
    data: AccountUpdateRequest,
    current: CurrentAccount,
    accounts: Accounts,
):
    """Update an account profile or password (self or admin)."""
    ensure_self_or_admin(current, account_id)
    summary = await accounts.update_account(account_id, **data.model_dump())
    await accounts.commit()
    return summary


@router.delete("/{account_id}", response_model=SuccessResponse)
async def delete_account(account_id: uuid.UUID, admin: AdminAccount, accounts: Accounts):
    """Soft-delete an account (admin only)."""
    await accounts.delete_account(account_id)
    await accounts.commit()
    logger.info(
        "Account deleted by administrator",
        extra={"account_id": str(account_id), "admin_id": str(admin.id)},
    )
    return SuccessResponse(message="Account deleted successfully")
