"""
Account and role storage operations.

Every read of accounts takes an explicit ``scope``; there is no default, so
a query cannot include soft-deleted rows by accident.
"""

import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from userportal.kernel.errors import ConflictError
from userportal.kernel.models import (
    DEFAULT_ROLE,
    Account,
    RecordScope,
    Role,
    RoleName,
)
from userportal.kernel.pagination import PaginationParams


def _scoped(query: Select, scope: RecordScope) -> Select:
    if scope is RecordScope.ACTIVE:
        return query.where(Account.is_active.is_(True))
    return query


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class AccountRepository:
    """Storage operations on the accounts table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(
        self, account_id: uuid.UUID, *, scope: RecordScope
    ) -> Optional[Account]:
        query = _scoped(select(Account).where(Account.id == account_id), scope)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_username_or_email(
        self, username_or_email: str, *, scope: RecordScope
    ) -> Optional[Account]:
        value = username_or_email.strip().lower()
        query = _scoped(
            select(Account).where(
                or_(
                    func.lower(Account.username) == value,
                    func.lower(Account.email) == value,
                )
            ),
            scope,
        )
        result = await self.session.execute(query.limit(1))
        return result.scalars().first()

    async def username_in_use(
        self,
        username: str,
        *,
        scope: RecordScope,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        query = select(Account.id).where(
            func.lower(Account.username) == username.strip().lower()
        )
        if exclude_id is not None:
            query = query.where(Account.id != exclude_id)
        result = await self.session.execute(_scoped(query, scope).limit(1))
        return result.first() is not None

    async def email_in_use(
        self,
        email: str,
        *,
        scope: RecordScope,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        query = select(Account.id).where(
            func.lower(Account.email) == email.strip().lower()
        )
        if exclude_id is not None:
            query = query.where(Account.id != exclude_id)
        result = await self.session.execute(_scoped(query, scope).limit(1))
        return result.first() is not None

    async def insert(self, account: Account) -> Account:
        """Add a new account. A unique-index violation means a concurrent duplicate."""
        self.session.add(account)
        await self._flush_unique("Username or email is already registered")
        return account

    async def update(self, account: Account) -> Account:
        await self._flush_unique("Email is already registered")
        return account

    async def _flush_unique(self, conflict_message: str) -> None:
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(conflict_message) from exc

    async def touch_last_login(self, account: Account, now: datetime) -> None:
        account.last_login = now
        account.updated_at = now
        await self.session.flush()

    async def count_with_role(self, role_id: int, *, scope: RecordScope) -> int:
        query = _scoped(
            select(func.count()).select_from(Account).where(Account.role_id == role_id),
            scope,
        )
        return (await self.session.execute(query)).scalar_one()

    async def lock_active_with_role(self, role_id: int) -> List[uuid.UUID]:
        """
        Row-lock every active holder of a role (SELECT ... FOR UPDATE).

        Dialects without row locks (SQLite) compile this to a plain SELECT;
        there the conditional UPDATE below is the serialization point.
        """
        query = (
            select(Account.id)
            .where(Account.role_id == role_id, Account.is_active.is_(True))
            .with_for_update()
        )
        return list((await self.session.execute(query)).scalars().all())

    async def deactivate(
        self,
        account_id: uuid.UUID,
        now: datetime,
        *,
        protected_role_id: Optional[int] = None,
    ) -> bool:
        """
        Soft-delete an active account.

        With ``protected_role_id`` the row only matches while another active
        holder of that role exists. The count is evaluated inside the UPDATE,
        so the check and the write cannot be interleaved by another deletion.
        """
        conditions = [Account.id == account_id, Account.is_active.is_(True)]
        if protected_role_id is not None:
            other = aliased(Account)
            others = (
                select(func.count())
                .select_from(other)
                .where(
                    other.role_id == protected_role_id,
                    other.is_active.is_(True),
                    other.id != account_id,
                )
                .scalar_subquery()
            )
            conditions.append(
                or_(Account.role_id != protected_role_id, others > 0)
            )
        result = await self.session.execute(
            update(Account)
            .where(*conditions)
            .values(is_active=False, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_page(
        self, pagination: PaginationParams, *, scope: RecordScope
    ) -> Tuple[List[Account], int]:
        query = _scoped(select(Account), scope)
        return await self._page(query, pagination)

    async def search_page(
        self,
        term: str,
        pagination: PaginationParams,
        *,
        scope: RecordScope,
    ) -> Tuple[List[Account], int]:
        pattern = f"%{_escape_like(term.strip().lower())}%"
        query = _scoped(
            select(Account).where(
                or_(
                    func.lower(Account.username).like(pattern, escape="\\"),
                    func.lower(Account.email).like(pattern, escape="\\"),
                    func.lower(Account.first_name).like(pattern, escape="\\"),
                    func.lower(Account.last_name).like(pattern, escape="\\"),
                )
            ),
            scope,
        )
        return await self._page(query, pagination)

    async def _page(
        self, query: Select, pagination: PaginationParams
    ) -> Tuple[List[Account], int]:
        total_query = select(func.count()).select_from(query.order_by(None).subquery())
        total = (await self.session.execute(total_query)).scalar_one()
        result = await self.session.execute(
            query.order_by(Account.created_at, Account.id)
            .offset(pagination.offset)
            .limit(pagination.page_size)
        )
        return list(result.scalars().unique().all()), total


class RoleRepository:
    """Read access to roles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_name(self, name: RoleName | str) -> Optional[Role]:
        value = name.value if isinstance(name, RoleName) else name
        result = await self.session.execute(
            select(Role).where(Role.name == value, Role.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    async def get_default_role(self) -> Optional[Role]:
        return await self.get_by_name(DEFAULT_ROLE)
