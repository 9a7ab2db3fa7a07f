"""DialectRunner: CRUD on a caller-supplied connection.

The runner builds a statement through the dialect, executes it and closes
the statement.  It never opens, commits or closes the connection; that is
``Db`` / ``Session``'s job.

Guards run before any statement is built:

    - ``insert`` of an empty record
    - ``delete`` with an empty ``where`` (no full-table delete)
    - ``update`` with an empty record or an empty ``where``

Example::

    runner = DialectRunner(SqliteDialect())
    runner.insert(conn, Entity.create("user").set("name", "Alice"))
    runner.find(conn, Entity.create("user").set("name", "Alice"))
    # [Entity(table_name=None, ..., fields={'id': 1, 'name': 'Alice'})]

Tags:
    crud, runner, dialect, paging, entitydb

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, TypeVar

from entitydb.core.errors import PreconditionError, UnsupportedError
from entitydb.core.logging import get_logger
from entitydb.dialect.base import Dialect
from entitydb.entity import Entity
from entitydb.handlers import EntityListHandler, NumberHandler, PageResultHandler
from entitydb.page import Page, PageResult
from entitydb.sql.builder import SqlBuilder
from entitydb.sql.condition import build_conditions
from entitydb.sql.query import Query
from entitydb.sql.statement import SqlLog, Statement
from entitydb.sql.wrapper import QuoteWrapper

if TYPE_CHECKING:
    from entitydb.connection import ManagedConnection
    from entitydb.core.protocols import RsHandler

T = TypeVar("T")

logger = get_logger(__name__)

_ORDER_BY = re.compile(r"\sorder\s+by\s", re.IGNORECASE)


def strip_order_by(sql: str) -> str:
    """Drop a trailing ``ORDER BY`` clause (not one inside a subquery)."""
    matches = list(_ORDER_BY.finditer(sql))
    if not matches:
        return sql
    last = matches[-1]
    if ")" in sql[last.end():]:
        return sql
    return sql[: last.start()]


def _check_conn(conn: Any) -> None:
    if conn is None:
        raise ValueError("Connection object must be not None!")


class DialectRunner:
    """Stateless CRUD executor over a dialect.

    Args:
        dialect: statement factory
        sql_log: statement logging
        case_insensitive: lowercase column names of entity results
    """

    def __init__(self, dialect: Dialect, *, sql_log: SqlLog | None = None, case_insensitive: bool = False):
        self.dialect = dialect
        self.sql_log = sql_log
        self.case_insensitive = case_insensitive

    def _run(self, stmt: Statement) -> Statement:
        stmt.sql_log = self.sql_log
        return stmt

    # ------------------------------------------------------------------ insert

    def insert(self, conn: ManagedConnection, *records: Entity) -> list[int]:
        """Insert records; one affected count per record.

        No records gives ``[0]``; several records run as one batch.
        """
        _check_conn(conn)
        if not records:
            return [0]
        for record in records:
            if not record:
                raise PreconditionError("Empty entity provided!").with_context(
                    operation="insert", table=record.table_name
                )

        if len(records) == 1:
            with self._run(self.dialect.for_insert(conn, records[0])) as stmt:
                return [stmt.execute_update()]
        with self._run(self.dialect.for_insert_batch(conn, records)) as stmt:
            return stmt.execute_batch()

    def insert_for_generated_keys(self, conn: ManagedConnection, record: Entity) -> list[Any]:
        """Insert one record and return the keys the database generated."""
        _check_conn(conn)
        if not record:
            raise PreconditionError("Empty entity provided!").with_context(
                operation="insert", table=record.table_name
            )
        with self._run(self.dialect.for_insert(conn, record, generated_keys=True)) as stmt:
            stmt.execute_update()
            return stmt.generated_keys()

    def insert_for_generated_key(self, conn: ManagedConnection, record: Entity) -> Any:
        keys = self.insert_for_generated_keys(conn, record)
        return keys[0] if keys else None

    def upsert(self, conn: ManagedConnection, record: Entity, *keys: str) -> int:
        """Native upsert when the dialect has one, ``insert_or_update`` otherwise."""
        _check_conn(conn)
        try:
            stmt = self.dialect.for_upsert(conn, record, keys)
        except UnsupportedError:
            logger.debug("upsert_fallback", dialect=self.dialect.name, table=record.table_name)
            return self.insert_or_update(conn, record, *keys)
        with self._run(stmt):
            return stmt.execute_update()

    def insert_or_update(self, conn: ManagedConnection, record: Entity, *keys: str) -> int:
        """Update the row matching ``keys`` when it exists, insert otherwise."""
        where = record.filter_new(*keys)
        if where and self.count(conn, Query.of(where)) > 0:
            return self.update(conn, record.remove_new(*keys), where)
        return self.insert(conn, record)[0]

    # ------------------------------------------------------------------ delete / update

    def delete(self, conn: ManagedConnection, where: Entity) -> int:
        _check_conn(conn)
        if not where:
            raise PreconditionError("Empty entity provided!").with_context(
                operation="delete", table=where.table_name
            )
        with self._run(self.dialect.for_delete(conn, Query.of(where))) as stmt:
            return stmt.execute_update()

    def update(self, conn: ManagedConnection, record: Entity, where: Entity) -> int:
        """Update rows matching ``where``.

        The table comes from ``record``; when blank it is taken from
        ``where`` and written back onto ``record``.
        """
        _check_conn(conn)
        if not record:
            raise PreconditionError("Empty entity provided!").with_context(operation="update")
        if not where:
            raise PreconditionError("Empty where provided!").with_context(
                operation="update", table=record.table_name
            )

        table_name = record.table_name
        if not table_name or not table_name.strip():
            table_name = where.table_name
            record.set_table_name(table_name)

        query = Query(build_conditions(where), table_name)
        with self._run(self.dialect.for_update(conn, record, query)) as stmt:
            return stmt.execute_update()

    # ------------------------------------------------------------------ find / count

    def find(self, conn: ManagedConnection, query: Query | Entity, handler: RsHandler[T] | None = None) -> T:
        """Rows matching ``query``; entity list unless ``handler`` says otherwise."""
        _check_conn(conn)
        if query is None:
            raise ValueError("[query] is None !")
        if isinstance(query, Entity):
            query = Query.of(query)
        handler = handler or EntityListHandler(self.case_insensitive)  # type: ignore[assignment]
        with self._run(self.dialect.for_find(conn, query)) as stmt:
            return stmt.execute_query(handler)  # type: ignore[arg-type]

    def count(self, conn: ManagedConnection, query: Query | Entity) -> int:
        _check_conn(conn)
        if isinstance(query, Entity):
            query = Query.of(query)
        with self._run(self.dialect.for_count(conn, query)) as stmt:
            return int(stmt.execute_query(NumberHandler()) or 0)

    def count_sql(self, conn: ManagedConnection, builder: SqlBuilder) -> int:
        """Count the rows of a hand-built SELECT, ignoring its ``ORDER BY``."""
        _check_conn(conn)
        stripped = SqlBuilder.of(strip_order_by(builder.build()), *builder.params)
        with self._run(self.dialect.for_count(conn, stripped)) as stmt:
            return int(stmt.execute_query(NumberHandler()) or 0)

    # ------------------------------------------------------------------ paging

    def page(self, conn: ManagedConnection, query: Query, handler: RsHandler[T] | None = None) -> Any:
        """One page of ``query``.

        Without ``handler`` the result is a ``PageResult`` of entities
        carrying the total count.  Without ``query.page`` this is a plain
        ``find``.
        """
        _check_conn(conn)
        if handler is None:
            if query.page is None:
                return self.find(conn, query)
            total = self.count(conn, query.copy().set_page(None))
            handler = PageResultHandler(  # type: ignore[assignment]
                PageResult(query.page, total=total), case_insensitive=self.case_insensitive
            )
        if query.page is None:
            return self.find(conn, query, handler)
        with self._run(self.dialect.for_page(conn, query)) as stmt:
            return stmt.execute_query(handler)  # type: ignore[arg-type]

    def page_sql(
        self,
        conn: ManagedConnection,
        builder: SqlBuilder,
        page: Page,
        handler: RsHandler[T] | None = None,
    ) -> Any:
        """One page of a hand-built SELECT; ``PageResult`` unless ``handler`` is given."""
        _check_conn(conn)
        if handler is None:
            total = self.count_sql(conn, builder)
            handler = PageResultHandler(  # type: ignore[assignment]
                PageResult(page, total=total), case_insensitive=self.case_insensitive
            )
        with self._run(self.dialect.for_page_sql(conn, builder, page)) as stmt:
            return stmt.execute_query(handler)  # type: ignore[arg-type]

    # ------------------------------------------------------------------ quoting

    def set_wrapper(self, wrapper: QuoteWrapper | str | None) -> None:
        """Quote identifiers with ``wrapper`` (a character or a ``QuoteWrapper``)."""
        self.dialect.set_wrapper(wrapper)

    def disable_wrapper(self) -> None:
        self.dialect.set_wrapper(None)


__all__ = [
    "DialectRunner",
    "strip_order_by",
]
