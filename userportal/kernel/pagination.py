"""
Pagination parameters and paged results.
"""

import math
from dataclasses import dataclass
from typing import Generic, List, TypeVar

from pydantic import BaseModel

from userportal.kernel.errors import ValidationError

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 10
MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 50


@dataclass(frozen=True)
class PaginationParams:
    """Validated page request. Out-of-range values are rejected, not clamped."""

    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self):
        errors: dict[str, list[str]] = {}
        if not isinstance(self.page, int) or self.page < 1:
            errors["page"] = ["Page must be 1 or greater"]
        if (
            not isinstance(self.page_size, int)
            or not MIN_PAGE_SIZE <= self.page_size <= MAX_PAGE_SIZE
        ):
            errors["page_size"] = [
                f"Page size must be between {MIN_PAGE_SIZE} and {MAX_PAGE_SIZE}"
            ]
        if errors:
            raise ValidationError(errors)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class Page(BaseModel, Generic[T]):
    """Paginated list response."""

    items: List[T]
    total: int
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    total_pages: int = 0
    has_next: bool = False
    has_previous: bool = False

    @classmethod
    def create(
        cls,
        items: List[T],
        total: int,
        params: PaginationParams,
    ) -> "Page[T]":
        total_pages = math.ceil(total / params.page_size) if total else 0
        return cls(
            items=items,
            total=total,
            page=params.page,
            page_size=params.page_size,
            total_pages=total_pages,
            has_next=params.page < total_pages,
            has_previous=params.page > 1,
        )
