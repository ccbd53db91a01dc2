"""
Identity error taxonomy.

Every rejected precondition in the core raises one of these. The transport
layer maps them to status codes; nothing else about storage or libraries
leaks to the caller.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from userportal.logging_config import get_logger

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid username or password"
INVALID_TOKEN = "Invalid or expired token"
INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"
INTERNAL_ERROR = "The operation could not be completed"


class IdentityError(Exception):
    """
    Base class for expected, typed outcomes of identity operations.

    Attributes:
        message: Human-readable message, safe to return to clients
        code: Machine-readable error code
        errors: Field name -> list of messages (validation and conflicts)
    """

    status_code = 400
    default_code = "identity_error"

    def __init__(
        self,
        message: str,
        errors: Optional[Dict[str, List[str]]] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        body: dict = {"detail": self.message, "code": self.code}
        if self.errors:
            body["errors"] = self.errors
        return body


class UnauthorizedError(IdentityError):
    """Bad credentials or an invalid/expired token."""

    status_code = 401
    default_code = "unauthorized"

    def __init__(self, message: str = INVALID_CREDENTIALS):
        super().__init__(message)


class ForbiddenError(IdentityError):
    """Authenticated, but not allowed to act on the target."""

    status_code = 403
    default_code = "forbidden"


class NotFoundError(IdentityError):
    """Target account does not exist or is soft-deleted."""

    status_code = 404
    default_code = "not_found"


class ConflictError(IdentityError):
    """Duplicate identity, or removal of the last privileged account."""

    status_code = 409
    default_code = "conflict"


class ValidationError(IdentityError):
    """Malformed input. ``errors`` maps each offending field to its messages."""

    status_code = 422
    default_code = "validation_error"

    def __init__(self, errors: Dict[str, List[str]], message: str = "Validation error"):
        super().__init__(message, errors=errors)


class InternalError(IdentityError):
    """Storage or unexpected failure. Carries no implementation detail."""

    status_code = 500
    default_code = "internal_error"

    def __init__(self, message: str = INTERNAL_ERROR):
        super().__init__(message)


@asynccontextmanager
async def storage_errors(operation: str) -> AsyncIterator[None]:
    """Re-raise storage failures inside ``operation`` as InternalError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Storage failure during %s", operation)
        raise InternalError() from exc
