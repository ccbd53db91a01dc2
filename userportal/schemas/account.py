"""
Account management schemas.
"""

from typing import Optional

from pydantic import BaseModel


class AccountUpdateRequest(BaseModel):
    """
    Profile update request.

    Omitted or empty fields are left unchanged. Supplying ``new_password``
    requires ``current_password`` and ``confirm_new_password``.
    """

    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_picture: Optional[str] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = None
    confirm_new_password: Optional[str] = None
