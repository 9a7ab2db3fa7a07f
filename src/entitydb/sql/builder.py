"""SqlBuilder: incremental SQL text plus bound parameters.

Dialects build every statement through ``SqlBuilder``; callers can also use
it directly for ad-hoc SQL passed to ``count_sql`` / ``page_sql``::

    sql = (
        SqlBuilder()
        .select(["id", "name"])
        .from_("user")
        .where(Condition("age", ">", 18))
        .order_by(Order("id", Direction.DESC))
    )
    sql.build()    # 'SELECT id,name FROM user WHERE age > ? ORDER BY id DESC'
    sql.params     # [18]

Placeholders are always ``?``; the dialect converts them when the
statement is prepared.

Architecture::

    ┌──────────────────────────────────────────────────────────┐
    │ SqlBuilder                                               │
    │   _parts: list[str]        ← text fragments              │
    │   params: list[Any]        ← values, in placeholder order│
    │   quote_wrapper            ← optional identifier quoting │
    ├──────────────────────────────────────────────────────────┤
    │ insert / update / delete   DML from an Entity            │
    │ select / from_ / where     SELECT clauses                │
    │ group_by / having / order_by / join / on                 │
    │ append / add_params        raw fragments                 │
    └──────────────────────────────────────────────────────────┘

Tags:
    sql, builder, dml, entitydb

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any

from entitydb.core.errors import PreconditionError
from entitydb.entity import Entity
from entitydb.page import Order
from entitydb.sql.condition import Condition, ConditionBuilder
from entitydb.sql.query import Query
from entitydb.sql.wrapper import QuoteWrapper


class Join(str, Enum):
    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"


def validate_entity(entity: Entity | None) -> None:
    """Reject missing entities, blank table names and empty entities."""
    if entity is None:
        raise PreconditionError("Entity is None!")
    if not entity.table_name or not entity.table_name.strip():
        raise PreconditionError("Entity's table name is blank!")
    if not entity:
        raise PreconditionError("No field and value in this entity!")


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


class SqlBuilder:
    def __init__(self, quote_wrapper: QuoteWrapper | None = None):
        self._parts: list[str] = []
        self.params: list[Any] = []
        self.quote_wrapper = quote_wrapper

    @classmethod
    def of(cls, sql: str | None = None, *params: Any, quote_wrapper: QuoteWrapper | None = None) -> SqlBuilder:
        builder = cls(quote_wrapper)
        if sql:
            builder.append(sql)
        return builder.add_params(*params)

    def _wrap(self, name: str) -> str:
        if self.quote_wrapper is None:
            return name
        return self.quote_wrapper.wrap(name) or name

    # ------------------------------------------------------------------ DML

    def insert(self, entity: Entity, *, keyword: str = "INSERT") -> SqlBuilder:
        """``INSERT INTO table (a, b) VALUES (?, ?)`` from ``entity``."""
        validate_entity(entity)
        columns: list[str] = []
        for field, value in entity.items():
            if _is_blank(field):
                continue
            columns.append(self._wrap(field))
            self.params.append(value)

        placeholders = ", ".join("?" for _ in columns)
        self._parts.append(
            f"{keyword} INTO {self._wrap(entity.table_name)} ({', '.join(columns)}) VALUES ({placeholders})"  # type: ignore[arg-type]
        )
        return self

    def delete(self, table_name: str) -> SqlBuilder:
        if _is_blank(table_name):
            raise PreconditionError("Table name is blank!")
        self._parts.append(f"DELETE FROM {self._wrap(table_name)}")
        return self

    def update(self, entity: Entity) -> SqlBuilder:
        """``UPDATE table SET a = ?, b = ?``; ``None`` values are written too."""
        validate_entity(entity)
        assignments: list[str] = []
        for field, value in entity.items():
            if _is_blank(field):
                continue
            assignments.append(f"{self._wrap(field)} = ?")
            self.params.append(value)
        self._parts.append(f"UPDATE {self._wrap(entity.table_name)} SET {', '.join(assignments)}")  # type: ignore[arg-type]
        return self

    # ------------------------------------------------------------------ SELECT

    def select(self, fields: Iterable[str] | None = None, distinct: bool = False) -> SqlBuilder:
        fields = list(fields or ())
        projection = ",".join(self._wrap(f) for f in fields) if fields else "*"
        self._parts.append(f"SELECT {'DISTINCT ' if distinct else ''}{projection}")
        return self

    def from_(self, *table_names: str) -> SqlBuilder:
        if not table_names or any(_is_blank(t) for t in table_names):
            raise PreconditionError("Table name is blank in table names!")
        self._parts.append(" FROM " + ",".join(self._wrap(t) for t in table_names))
        return self

    def where(self, *conditions: Condition | str) -> SqlBuilder:
        """Append ``WHERE``; accepts conditions or one raw SQL fragment."""
        fragment = self._condition_fragment(conditions)
        if fragment:
            self._parts.append(f" WHERE {fragment}")
        return self

    def group_by(self, *fields: str) -> SqlBuilder:
        if fields:
            self._parts.append(" GROUP BY " + ",".join(self._wrap(f) for f in fields))
        return self

    def having(self, *conditions: Condition | str) -> SqlBuilder:
        fragment = self._condition_fragment(conditions)
        if fragment:
            self._parts.append(f" HAVING {fragment}")
        return self

    def order_by(self, *orders: Order) -> SqlBuilder:
        items = [
            f"{self._wrap(o.field)} {o.direction.value}" if o.direction else self._wrap(o.field)
            for o in orders
            if not _is_blank(o.field)
        ]
        if items:
            self._parts.append(" ORDER BY " + ",".join(items))
        return self

    def join(self, table_name: str, join: Join | None = Join.INNER) -> SqlBuilder:
        if _is_blank(table_name):
            raise PreconditionError("Table name is blank!")
        if join is not None:
            self._parts.append(f" {Join(join).value} JOIN {self._wrap(table_name)}")
        return self

    def on(self, *conditions: Condition | str) -> SqlBuilder:
        fragment = self._condition_fragment(conditions)
        if fragment:
            self._parts.append(f" ON {fragment}")
        return self

    def query(self, query: Query) -> SqlBuilder:
        """``SELECT fields FROM tables WHERE conditions`` for ``query``."""
        return self.select(query.fields).from_(*query.tables).where(*query.where)

    # ------------------------------------------------------------------ raw

    def append(self, fragment: Any) -> SqlBuilder:
        if fragment is not None:
            self._parts.append(str(fragment))
        return self

    def insert_pre_fragment(self, fragment: Any) -> SqlBuilder:
        if fragment is not None:
            self._parts.insert(0, str(fragment))
        return self

    def add_params(self, *params: Any) -> SqlBuilder:
        self.params.extend(params)
        return self

    def build(self) -> str:
        return "".join(self._parts)

    def copy(self) -> SqlBuilder:
        clone = SqlBuilder(self.quote_wrapper)
        clone._parts = list(self._parts)
        clone.params = list(self.params)
        return clone

    def _condition_fragment(self, conditions: tuple[Condition | str, ...]) -> str:
        if not conditions:
            return ""
        if len(conditions) == 1 and isinstance(conditions[0], str):
            return conditions[0].strip()
        conds = [c for c in conditions if isinstance(c, Condition)]
        if self.quote_wrapper is not None:
            conds = self.quote_wrapper.wrap_conditions(conds)
        return ConditionBuilder(conds).build(self.params)

    def __str__(self) -> str:
        return self.build()

    def __repr__(self) -> str:
        return f"SqlBuilder(sql={self.build()!r}, params={self.params!r})"


__all__ = [
    "Join",
    "SqlBuilder",
    "validate_entity",
]
