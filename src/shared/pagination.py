"""Offset pagination shared by list endpoints."""

import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 20

    def __post_init__(self) -> None:
        object.__setattr__(self, "page", max(1, self.page))
        object.__setattr__(self, "limit", min(max(1, self.limit), MAX_PAGE_SIZE))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class PageMeta:
    total_items: int
    item_count: int
    items_per_page: int
    total_pages: int
    current_page: int
    has_next_page: bool
    has_previous_page: bool


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    meta: PageMeta | None = None

    @classmethod
    def build(cls, items: list[T], total: int, request: PageRequest) -> "Page[T]":
        total_pages = math.ceil(total / request.limit) if total else 0
        meta = PageMeta(
            total_items=total,
            item_count=len(items),
            items_per_page=request.limit,
            total_pages=total_pages,
            current_page=request.page,
            has_next_page=request.page < total_pages,
            has_previous_page=request.page > 1,
        )
        return cls(items=items, meta=meta)
