"""
Input rules for registration and account updates.

Each check collects messages per field so a caller gets every problem at
once, then a single ValidationError is raised.
"""

import re
from collections import defaultdict
from typing import Dict, List, Optional

from email_validator import EmailNotValidError, validate_email

from userportal.kernel.errors import ValidationError
from userportal.kernel.models.account import (
    EMAIL_MAX_LEN,
    NAME_MAX_LEN,
    PROFILE_PICTURE_MAX_LEN,
    USERNAME_MAX_LEN,
)

USERNAME_MIN_LEN = 3
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")
PASSWORD_MIN_LEN = 8
# bcrypt input limit, in UTF-8 bytes
PASSWORD_MAX_BYTES = 72

REQUIRED = "This field is required"
PASSWORD_MISMATCH = "Passwords do not match"


class FieldErrors:
    """Accumulates field -> messages and raises once."""

    def __init__(self):
        self._errors: Dict[str, List[str]] = defaultdict(list)

    def add(self, field: str, message: str) -> None:
        self._errors[field].append(message)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def raise_if_any(self) -> None:
        if self._errors:
            raise ValidationError(dict(self._errors))


def check_username(errors: FieldErrors, username: str) -> None:
    if not username or not username.strip():
        errors.add("username", REQUIRED)
        return
    value = username.strip()
    if not USERNAME_MIN_LEN <= len(value) <= USERNAME_MAX_LEN:
        errors.add(
            "username",
            f"Username must be between {USERNAME_MIN_LEN} and {USERNAME_MAX_LEN} characters",
        )
    if not USERNAME_PATTERN.match(value):
        errors.add(
            "username",
            "Username may only contain letters, digits and the characters . _ -",
        )


def normalize_email(email: str) -> str:
    return email.strip().lower()


def check_email(errors: FieldErrors, email: str) -> None:
    if not email or not email.strip():
        errors.add("email", REQUIRED)
        return
    value = email.strip()
    if len(value) > EMAIL_MAX_LEN:
        errors.add("email", f"Email must be at most {EMAIL_MAX_LEN} characters")
        return
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        errors.add("email", "Email address is not valid")


def check_password(errors: FieldErrors, field: str, password: str) -> None:
    if not password:
        errors.add(field, REQUIRED)
        return
    if len(password) < PASSWORD_MIN_LEN:
        errors.add(field, f"Password must be at least {PASSWORD_MIN_LEN} characters")
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        errors.add(field, f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    if not any(c.isupper() for c in password):
        errors.add(field, "Password must contain at least one uppercase letter")
    if not any(c.islower() for c in password):
        errors.add(field, "Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in password):
        errors.add(field, "Password must contain at least one digit")


def check_name(errors: FieldErrors, field: str, value: Optional[str], required: bool) -> None:
    if value is None or not value.strip():
        if required:
            errors.add(field, REQUIRED)
        return
    if len(value.strip()) > NAME_MAX_LEN:
        errors.add(field, f"Must be at most {NAME_MAX_LEN} characters")


def validate_registration(
    username: str,
    email: str,
    password: str,
    confirm_password: str,
    first_name: str,
    last_name: str,
) -> None:
    """Raise ValidationError unless every registration field is acceptable."""
    errors = FieldErrors()
    check_username(errors, username)
    check_email(errors, email)
    check_password(errors, "password", password)
    if not confirm_password:
        errors.add("confirm_password", REQUIRED)
    elif confirm_password != password:
        errors.add("confirm_password", PASSWORD_MISMATCH)
    check_name(errors, "first_name", first_name, required=True)
    check_name(errors, "last_name", last_name, required=True)
    errors.raise_if_any()


def validate_update(
    email: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    profile_picture: Optional[str] = None,
    current_password: Optional[str] = None,
    new_password: Optional[str] = None,
    confirm_new_password: Optional[str] = None,
) -> None:
    """Raise ValidationError unless the supplied update fields are acceptable."""
    errors = FieldErrors()
    if email:
        check_email(errors, email)
    check_name(errors, "first_name", first_name, required=False)
    check_name(errors, "last_name", last_name, required=False)
    if profile_picture and len(profile_picture) > PROFILE_PICTURE_MAX_LEN:
        errors.add(
            "profile_picture",
            f"Must be at most {PROFILE_PICTURE_MAX_LEN} characters",
        )
    if current_password or new_password:
        if not current_password:
            errors.add("current_password", "Current password is required to change the password")
        check_password(errors, "new_password", new_password or "")
        if not confirm_new_password:
            errors.add("confirm_new_password", REQUIRED)
        elif confirm_new_password != new_password:
            errors.add("confirm_new_password", PASSWORD_MISMATCH)
    errors.raise_if_any()
