"""
Create an administrator account (there is no admin self-registration).
Run from project root:
  python -m scripts.create_admin USERNAME EMAIL PASSWORD [--first-name F] [--last-name L]
Example:
  python -m scripts.create_admin admin admin@example.com 'S3cure-passphrase'
"""
import argparse
import asyncio
import sys

from sqlalchemy.ext.asyncio import AsyncEngine

from userportal.database import async_session_maker, build_session_maker, close_db, init_db
from userportal.kernel.accounts.lifecycle import AccountLifecycleGuard
from userportal.kernel.accounts.validation import normalize_email, validate_registration
from userportal.kernel.errors import IdentityError
from userportal.kernel.identity.password import get_password_hasher
from userportal.kernel.models import PRIVILEGED_ROLE, Account
from userportal.logging_config import configure_logging


async def create_admin(
    username: str,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    bind: AsyncEngine | None = None,
) -> Account:
    """
    Persist a new account holding the administrator role.

    Raises:
        ValidationError: malformed input
        ConflictError: username or email already held by an active account
    """
    validate_registration(username, email, password, password, first_name, last_name)
    await init_db(bind)

    session_maker = build_session_maker(bind) if bind is not None else async_session_maker
    async with session_maker() as session:
        guard = AccountLifecycleGuard(session)
        username = username.strip()
        email = normalize_email(email)
        await guard.ensure_registration_unique(username, email)

        role = await guard.roles.get_by_name(PRIVILEGED_ROLE)
        account = Account(
            username=username,
            email=email,
            password_hash=await asyncio.to_thread(get_password_hasher().hash, password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            role_id=role.id,
        )
        account.role = role
        guard.prepare_new(account)
        await guard.accounts.insert(account)
        await session.commit()
        return account


async def _run(args: argparse.Namespace) -> Account:
    try:
        return await create_admin(
            args.username,
            args.email,
            args.password,
            args.first_name,
            args.last_name,
        )
    finally:
        await close_db()


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a User Portal administrator.")
    parser.add_argument("username", help="Username (3-50 chars: letters, digits, . _ -)")
    parser.add_argument("email", help="Email address")
    parser.add_argument("password", help="Password (8-128 chars, upper, lower and digit)")
    parser.add_argument("--first-name", default="System")
    parser.add_argument("--last-name", default="Administrator")
    args = parser.parse_args()

    configure_logging(log_level="WARNING")
    try:
        account = asyncio.run(_run(args))
    except IdentityError as exc:
        print(f"{exc.message}", file=sys.stderr)
        for field, messages in exc.errors.items():
            for message in messages:
                print(f"  {field}: {message}", file=sys.stderr)
        return 1

    print(f"Created administrator '{account.username}' ({account.id}).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
