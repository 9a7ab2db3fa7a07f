"""Result handlers.

A handler receives the live cursor after a query ran and turns it into a
value: entities, models, a scalar.  The statement closes the cursor once
the handler returns or raises.

    db.query("SELECT * FROM user", EntityListHandler())
    db.query("SELECT COUNT(*) FROM user", NumberHandler())
    db.query("SELECT * FROM user", BeanListHandler(User))

Column names come from ``cursor.description``; entities built here carry
no table name.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from entitydb.core.protocols import Cursor, RsHandler
from entitydb.entity import Entity
from entitydb.page import PageResult

T = TypeVar("T")


def column_names(cursor: Cursor, case_insensitive: bool = False) -> list[str]:
    if cursor.description is None:
        return []
    names = [str(column[0]) for column in cursor.description]
    return [name.lower() for name in names] if case_insensitive else names


def row_to_entity(names: list[str], row: Any) -> Entity:
    return Entity(None, zip(names, row))


class EntityListHandler:
    """All rows as ``Entity`` objects."""

    def __init__(self, case_insensitive: bool = False):
        self.case_insensitive = case_insensitive

    def __call__(self, cursor: Cursor) -> list[Entity]:
        names = column_names(cursor, self.case_insensitive)
        if not names:
            return []
        return [row_to_entity(names, row) for row in cursor.fetchall()]


class EntityHandler:
    """First row as an ``Entity``, ``None`` when there is none."""

    def __init__(self, case_insensitive: bool = False):
        self.case_insensitive = case_insensitive

    def __call__(self, cursor: Cursor) -> Entity | None:
        names = column_names(cursor, self.case_insensitive)
        if not names:
            return None
        row = cursor.fetchone()
        return None if row is None else row_to_entity(names, row)


class EntitySetHandler(EntityListHandler):
    """Distinct rows, first occurrence order."""

    def __call__(self, cursor: Cursor) -> list[Entity]:
        distinct: list[Entity] = []
        for entity in super().__call__(cursor):
            if entity not in distinct:
                distinct.append(entity)
        return distinct


class NumberHandler:
    """First column of the first row, ``None`` when there is no row."""

    def __call__(self, cursor: Cursor) -> Any:
        row = cursor.fetchone() if cursor.description is not None else None
        return None if row is None else row[0]


class StringHandler:
    def __call__(self, cursor: Cursor) -> str | None:
        value = NumberHandler()(cursor)
        return None if value is None else str(value)


class ValueListHandler:
    """Rows as plain value lists."""

    def __call__(self, cursor: Cursor) -> list[list[Any]]:
        if cursor.description is None:
            return []
        return [list(row) for row in cursor.fetchall()]


class BeanListHandler(Generic[T]):
    """Rows mapped onto a pydantic model or dataclass via ``Entity.to_model``."""

    def __init__(self, model: type[T]):
        self.model = model

    def __call__(self, cursor: Cursor) -> list[T]:
        return [entity.to_model(self.model) for entity in EntityListHandler()(cursor)]


class BeanHandler(Generic[T]):
    def __init__(self, model: type[T]):
        self.model = model

    def __call__(self, cursor: Cursor) -> T | None:
        entity = EntityHandler()(cursor)
        return None if entity is None else entity.to_model(self.model)


class PageResultHandler(Generic[T]):
    """Fills a prepared ``PageResult`` with the rows of one page.

    Args:
        page_result: result carrying page number, size and total
        handler: row handler, entity rows by default
    """

    def __init__(
        self,
        page_result: PageResult[T],
        handler: RsHandler[list[T]] | None = None,
        case_insensitive: bool = False,
    ):
        self.page_result = page_result
        self.handler = handler or EntityListHandler(case_insensitive)

    def __call__(self, cursor: Cursor) -> PageResult[T]:
        self.page_result.extend(self.handler(cursor))
        return self.page_result


__all__ = [
    "BeanHandler",
    "BeanListHandler",
    "EntityHandler",
    "EntityListHandler",
    "EntitySetHandler",
    "NumberHandler",
    "PageResultHandler",
    "StringHandler",
    "ValueListHandler",
    "column_names",
    "row_to_entity",
]
