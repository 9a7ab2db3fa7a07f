"""SQL dialect base class.

A dialect turns entities and queries into ready-to-run ``Statement``
objects for one backend.  Everything is generated with ``?`` placeholders
through ``SqlBuilder``; ``format_sql`` rewrites them into the driver's
``paramstyle`` at the last moment.

Manifesto:
    Runners and ``Db`` never write SQL for a specific backend.  Paging,
    upsert, isolation and savepoint syntax live here, one subclass per
    backend, so switching databases means switching dialects.

    - **One interface:** ``for_insert`` / ``for_find`` / ``for_page`` ...
    - **Driver-agnostic:** no driver module is imported
    - **Overridable pieces:** subclasses usually only override
      ``wrap_page_sql``, ``for_upsert`` and ``isolation_statement``

Architecture::

    Entity / Query ──► SqlBuilder (``?``) ──► format_sql ──► Statement
                                                (qmark / format / numeric)

    ┌────────┐ ┌──────────┐ ┌────────────┐ ┌────────┐ ┌──────────┐
    │ ANSI   │ │ SQLite   │ │ PostgreSQL │ │ MySQL  │ │ Oracle   │
    │ ?      │ │ ?        │ │ %s         │ │ %s     │ │ :1, :2   │
    │ LIMIT  │ │ LIMIT    │ │ LIMIT      │ │ LIMIT  │ │ FETCH    │
    │ OFFSET │ │ OFFSET   │ │ OFFSET     │ │ o, n   │ │ NEXT     │
    └────────┘ └──────────┘ └────────────┘ └────────┘ └──────────┘

Tags:
    dialect, sql, paging, upsert, isolation, entitydb

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

from entitydb.connection import IsolationLevel
from entitydb.core.errors import PreconditionError, UnsupportedError
from entitydb.entity import Entity
from entitydb.page import Page
from entitydb.sql.builder import SqlBuilder, validate_entity
from entitydb.sql.query import Query
from entitydb.sql.statement import Statement
from entitydb.sql.wrapper import QuoteWrapper

if TYPE_CHECKING:
    from entitydb.connection import ManagedConnection

_PARAM_TOKEN = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|\?|%")

ALL_ISOLATION_LEVELS = frozenset(
    {
        IsolationLevel.READ_UNCOMMITTED,
        IsolationLevel.READ_COMMITTED,
        IsolationLevel.REPEATABLE_READ,
        IsolationLevel.SERIALIZABLE,
    }
)

COUNT_ALIAS = "entitydb_alias_count_"


class Dialect(ABC):
    """Statement factory for one backend.

    Attributes:
        paramstyle: DB-API paramstyle of the driver (``qmark``, ``format``,
            ``numeric``)
        quote_wrapper: identifier quoting applied to tables and columns
    """

    paramstyle: str = "qmark"
    supports_transactions: bool = True
    supports_savepoints: bool = True
    default_isolation: IsolationLevel = IsolationLevel.READ_COMMITTED
    supported_isolation_levels: frozenset[IsolationLevel] = ALL_ISOLATION_LEVELS
    default_quote: tuple[str | None, str | None] = (None, None)

    def __init__(self, quote_wrapper: QuoteWrapper | None = None):
        self.quote_wrapper = quote_wrapper if quote_wrapper is not None else QuoteWrapper(*self.default_quote)

    @property
    @abstractmethod
    def name(self) -> str:
        """Dialect name (``'sqlite'``, ``'postgresql'`` ...)."""

    def set_wrapper(self, wrapper: QuoteWrapper | str | None) -> None:
        if wrapper is None or isinstance(wrapper, str):
            wrapper = QuoteWrapper(wrapper)
        self.quote_wrapper = wrapper

    # -- Placeholders ------------------------------------------------------

    def placeholder(self, index: int) -> str:
        """Single placeholder for the 0-based parameter ``index``."""
        if self.paramstyle == "numeric":
            return f":{index + 1}"
        if self.paramstyle == "format":
            return "%s"
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join(self.placeholder(i) for i in range(count))

    def format_sql(self, sql: str) -> str:
        """Rewrite ``?`` placeholders into the driver's paramstyle.

        Quoted literals are left untouched; with the ``format`` style a
        literal ``%`` is doubled.
        """
        if self.paramstyle == "qmark":
            return sql
        counter = iter(range(sql.count("?") + 1))

        def replace(match: re.Match[str]) -> str:
            token = match.group(0)
            if token == "?":
                return self.placeholder(next(counter))
            if self.paramstyle == "format":
                return token.replace("%", "%%")
            return token

        return _PARAM_TOKEN.sub(replace, sql)

    # -- Statements --------------------------------------------------------

    def _builder(self) -> SqlBuilder:
        return SqlBuilder(self.quote_wrapper)

    def _statement(self, conn: ManagedConnection, builder: SqlBuilder) -> Statement:
        return Statement(conn, builder.build(), builder.params, dialect=self)

    def for_insert(self, conn: ManagedConnection, record: Entity, generated_keys: bool = False) -> Statement:
        builder = self._builder().insert(record)
        if generated_keys:
            builder = self.returning_keys(builder)
        return self._statement(conn, builder)

    def returning_keys(self, builder: SqlBuilder) -> SqlBuilder:
        """Adjust an INSERT so the driver reports generated keys."""
        return builder

    def for_insert_batch(self, conn: ManagedConnection, records: Sequence[Entity]) -> Statement:
        """One INSERT executed once per record; records share the first one's fields."""
        if not records:
            raise PreconditionError("Entities for batch insert is empty !")
        first = records[0]
        validate_entity(first)
        fields = list(first)
        batch = []
        for record in records:
            if set(record) != set(fields):
                raise PreconditionError(
                    f"Batch insert records must share the fields {fields}, got {list(record)}"
                )
            batch.append([record[f] for f in fields])

        builder = self._builder().insert(first)
        return Statement(conn, builder.build(), batch=batch, dialect=self)

    def for_delete(self, conn: ManagedConnection, query: Query) -> Statement:
        if not query.where:
            raise PreconditionError("No 'WHERE' condition, we can't prepare statement for delete everything.")
        builder = self._builder().delete(query.first_table_name()).where(*query.where)
        return self._statement(conn, builder)

    def for_update(self, conn: ManagedConnection, record: Entity, query: Query) -> Statement:
        if not query.where:
            raise PreconditionError("No 'WHERE' condition, we can't prepare statement for update everything.")
        builder = self._builder().update(record).where(*query.where)
        return self._statement(conn, builder)

    def for_find(self, conn: ManagedConnection, query: Query) -> Statement:
        return self._statement(conn, self._find_builder(query))

    def for_page(self, conn: ManagedConnection, query: Query) -> Statement:
        if query.page is None:
            return self.for_find(conn, query)
        return self.for_page_sql(conn, self._find_builder(query), query.page)

    def for_page_sql(self, conn: ManagedConnection, builder: SqlBuilder, page: Page) -> Statement:
        builder = builder.copy()
        builder.quote_wrapper = self.quote_wrapper
        builder.order_by(*page.orders)
        return self._statement(conn, self.wrap_page_sql(builder, page))

    def for_count(self, conn: ManagedConnection, query: Query | SqlBuilder) -> Statement:
        """``SELECT COUNT(1) FROM (<find sql>) alias``."""
        if isinstance(query, Query):
            builder = self._find_builder(query)
        else:
            builder = query.copy()
        builder.insert_pre_fragment("SELECT COUNT(1) FROM (").append(f") {COUNT_ALIAS}")
        return self._statement(conn, builder)

    def for_upsert(self, conn: ManagedConnection, record: Entity, keys: Sequence[str]) -> Statement:
        raise UnsupportedError(f"Unsupported upsert operation of {self.name}")

    def wrap_page_sql(self, builder: SqlBuilder, page: Page) -> SqlBuilder:
        """Bound a find statement to ``page``; ANSI ``LIMIT ? OFFSET ?``."""
        return builder.append(" LIMIT ? OFFSET ?").add_params(page.page_size, page.start_position)

    def _find_builder(self, query: Query) -> SqlBuilder:
        query.first_table_name()
        return self._builder().query(query)

    def _upsert_parts(self, record: Entity, keys: Sequence[str]) -> tuple[list[str], list[str]]:
        validate_entity(record)
        if not keys:
            raise PreconditionError("Upsert needs at least one key field")
        wrap = self.quote_wrapper.wrap
        columns = [wrap(f) for f in record]
        updates = [wrap(f) for f in record if f not in keys]
        return columns, updates  # type: ignore[return-value]

    # -- Session control ---------------------------------------------------

    def begin_statement(self) -> str | None:
        """SQL opening a transaction, ``None`` when the driver begins one implicitly."""
        return None

    def isolation_statement(self, level: IsolationLevel) -> str | None:
        return f"SET TRANSACTION ISOLATION LEVEL {level.sql_name}"

    def savepoint_statement(self, name: str) -> str:
        return f"SAVEPOINT {name}"

    def rollback_to_savepoint_statement(self, name: str) -> str:
        return f"ROLLBACK TO SAVEPOINT {name}"

    def release_savepoint_statement(self, name: str) -> str | None:
        return f"RELEASE SAVEPOINT {name}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(quote_wrapper={self.quote_wrapper!r})"


class AnsiDialect(Dialect):
    """Plain ANSI SQL; used when no backend-specific dialect matches."""

    @property
    def name(self) -> str:
        return "ansi"


__all__ = [
    "ALL_ISOLATION_LEVELS",
    "AnsiDialect",
    "COUNT_ALIAS",
    "Dialect",
]
