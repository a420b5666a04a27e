from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Pagination:
    page: int = 1
    page_size: int = 20

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        return self.page_size


@dataclass
class Page(Generic[T]):
    items: list[T]
    page_number: int
    page_size: int
    total: int
    page_count: int = field(init=False)
    empty: bool = field(init=False)

    def __post_init__(self) -> None:
        self.page_count = compute_page_count(self.total, self.page_size)
        self.empty = len(self.items) == 0

    @classmethod
    def build(cls, items: list[T], *, pagination: Pagination, total: int) -> Page[T]:
        return cls(items=items, page_number=pagination.page, page_size=pagination.page_size, total=total)


def compute_page_count(total: int, page_size: int) -> int:
    if total <= 0:
        return 0
    return (total + page_size - 1) // page_size
