"""
Account Core - storage, lifecycle invariants and management.
"""

from userportal.kernel.accounts.repository import AccountRepository, RoleRepository
from userportal.kernel.accounts.lifecycle import AccountLifecycleGuard
from userportal.kernel.accounts.account_service import AccountService
from userportal.kernel.accounts.summary import AccountSummary

__all__ = [
    "AccountRepository",
    "RoleRepository",
    "AccountLifecycleGuard",
    "AccountService",
    "AccountSummary",
]
