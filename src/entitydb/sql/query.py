"""Query: tables, conditions, projection and paging for a SELECT."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from entitydb.core.errors import PreconditionError
from entitydb.entity import Entity
from entitydb.page import Page
from entitydb.sql.condition import Condition, build_conditions


class Query:
    """Everything a dialect needs to build a find / count / page / delete.

    Args:
        where: conditions joined by their link operators
        tables: table names (first one is used for single-table statements)
        fields: projected columns, ``None`` for ``*``
        page: page to fetch, ``None`` for all rows
    """

    def __init__(
        self,
        where: Iterable[Condition] | None = None,
        tables: Iterable[str] | str | None = None,
        fields: Iterable[str] | None = None,
        page: Page | None = None,
    ):
        self.where: list[Condition] = list(where or ())
        if isinstance(tables, str):
            tables = [tables]
        self.tables: list[str] = list(tables or ())
        self.fields: list[str] | None = list(fields) if fields else None
        self.page = page

    @classmethod
    def of(cls, where: Entity) -> Query:
        """Query on ``where.table_name`` with one condition per entry."""
        return cls(build_conditions(where), where.table_name, where.field_names)

    def first_table_name(self) -> str:
        if not self.tables or not self.tables[0] or not self.tables[0].strip():
            raise PreconditionError("No table name!")
        return self.tables[0]

    def set_fields(self, fields: Iterable[str] | None) -> Query:
        self.fields = list(fields) if fields else None
        return self

    def set_page(self, page: Page | None) -> Query:
        self.page = page
        return self

    def set_tables(self, *tables: str) -> Query:
        self.tables = list(tables)
        return self

    def set_where(self, *conditions: Condition) -> Query:
        self.where = list(conditions)
        return self

    def copy(self) -> Query:
        return Query([c.copy() for c in self.where], list(self.tables), self.fields, self.page)

    def __repr__(self) -> str:
        return f"Query(tables={self.tables!r}, fields={self.fields!r}, where={self.where!r}, page={self.page!r})"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Query):
            return NotImplemented
        return (self.where, self.tables, self.fields, self.page) == (
            other.where,
            other.tables,
            other.fields,
            other.page,
        )

    __hash__ = None  # type: ignore[assignment]


__all__ = ["Query"]
