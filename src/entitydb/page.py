"""Pagination descriptors and arithmetic.

``Page`` describes which slice of a result to fetch; ``PageResult`` is the
fetched slice plus the bookkeeping needed to render a pager.

Page numbers are zero-based::

    page = Page(2, 20)                # rows 40..59
    page.start_end()                  # (40, 60)
    total_page(45, 20)                # 3

Normalisation rules:
    - negative page number → 0
    - page size ≤ 0 → ``DEFAULT_PAGE_SIZE`` (20)

Tags:
    pagination, paging, entitydb

Doc-Types:
    api-reference
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20


class Direction(str, Enum):
    """Sort direction."""

    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: str | Direction | None) -> Direction | None:
        if value is None or isinstance(value, Direction):
            return value
        return cls(value.strip().upper())


@dataclass(frozen=True)
class Order:
    """``ORDER BY`` item; ``direction=None`` leaves the database default."""

    field: str
    direction: Direction | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "direction", Direction.parse(self.direction))

    def __str__(self) -> str:
        if self.direction is None:
            return self.field
        return f"{self.field} {self.direction.value}"


def _normalize(page_number: int, page_size: int) -> tuple[int, int]:
    return max(page_number, 0), page_size if page_size > 0 else DEFAULT_PAGE_SIZE


def trans_to_start_end(page_number: int, page_size: int) -> tuple[int, int]:
    """Zero-based page number to ``(start, end)`` row offsets, end exclusive."""
    page_number, page_size = _normalize(page_number, page_size)
    start = page_number * page_size
    return start, start + page_size


def total_page(total_count: int, page_size: int) -> int:
    """``ceil(total_count / page_size)``; 0 when there are no rows."""
    if total_count <= 0:
        return 0
    _, page_size = _normalize(0, page_size)
    return math.ceil(total_count / page_size)


class Page:
    """Which page to fetch and how to order it.

    Treated as immutable once handed to a query; ``add_order`` exists for
    building the descriptor.
    """

    def __init__(
        self,
        page_number: int = 0,
        page_size: int = DEFAULT_PAGE_SIZE,
        orders: Iterable[Order] | Order | None = None,
    ):
        self.page_number, self.page_size = _normalize(page_number, page_size)
        if orders is None:
            self.orders: list[Order] = []
        elif isinstance(orders, Order):
            self.orders = [orders]
        else:
            self.orders = list(orders)

    @classmethod
    def of(cls, page_number: int, page_size: int) -> Page:
        return cls(page_number, page_size)

    def add_order(self, *orders: Order) -> Page:
        self.orders.extend(orders)
        return self

    @property
    def start_position(self) -> int:
        return self.start_end()[0]

    @property
    def end_position(self) -> int:
        return self.start_end()[1]

    def start_end(self) -> tuple[int, int]:
        return trans_to_start_end(self.page_number, self.page_size)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Page):
            return NotImplemented
        return (self.page_number, self.page_size, self.orders) == (
            other.page_number,
            other.page_size,
            other.orders,
        )

    def __repr__(self) -> str:
        return f"Page(page_number={self.page_number}, page_size={self.page_size}, orders={self.orders!r})"


class PageResult(list, Generic[T]):
    """One page of rows plus total-count bookkeeping.

    Args:
        page: zero-based page number, or a ``Page``
        page_size: rows per page (ignored when ``page`` is a ``Page``)
        total: total matching rows across all pages
    """

    def __init__(
        self,
        page: int | Page = 0,
        page_size: int = DEFAULT_PAGE_SIZE,
        total: int = 0,
        rows: Iterable[T] | None = None,
    ):
        super().__init__(rows or ())
        if isinstance(page, Page):
            page, page_size = page.page_number, page.page_size
        self.page, self.page_size = _normalize(page, page_size)
        self.total = total
        self.total_page = total_page(total, self.page_size)

    def is_first(self) -> bool:
        return self.page == 0

    def is_last(self) -> bool:
        return self.page >= self.total_page - 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "total": self.total,
            "total_page": self.total_page,
            "rows": list(self),
        }

    def __repr__(self) -> str:
        return (
            f"PageResult(page={self.page}, page_size={self.page_size}, total={self.total}, "
            f"total_page={self.total_page}, rows={list.__repr__(self)})"
        )


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "Direction",
    "Order",
    "Page",
    "PageResult",
    "trans_to_start_end",
    "total_page",
]
