"""Oracle dialect: ``:1`` numbered placeholders (oracledb), ``MERGE`` upsert."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from entitydb.connection import IsolationLevel
from entitydb.dialect.base import Dialect
from entitydb.entity import Entity
from entitydb.page import Page
from entitydb.sql.builder import SqlBuilder
from entitydb.sql.statement import Statement

if TYPE_CHECKING:
    from entitydb.connection import ManagedConnection


class OracleDialect(Dialect):
    """Oracle 12c+.

    Oracle offers only ``READ COMMITTED`` and ``SERIALIZABLE`` and has no
    ``RELEASE SAVEPOINT``; releasing is a no-op.
    """

    paramstyle = "numeric"
    default_isolation = IsolationLevel.READ_COMMITTED
    supported_isolation_levels = frozenset({IsolationLevel.READ_COMMITTED, IsolationLevel.SERIALIZABLE})

    @property
    def name(self) -> str:
        return "oracle"

    def wrap_page_sql(self, builder: SqlBuilder, page: Page) -> SqlBuilder:
        return builder.append(" OFFSET ? ROWS FETCH NEXT ? ROWS ONLY").add_params(
            page.start_position, page.page_size
        )

    def for_upsert(self, conn: ManagedConnection, record: Entity, keys: Sequence[str]) -> Statement:
        columns, updates = self._upsert_parts(record, keys)
        wrap = self.quote_wrapper.wrap
        table = wrap(record.table_name)
        source = ", ".join(f"? {c}" for c in columns)
        matches = " AND ".join(f"t.{wrap(k)} = s.{wrap(k)}" for k in keys)
        sql = f"MERGE INTO {table} t USING (SELECT {source} FROM dual) s ON ({matches})"
        if updates:
            sql += " WHEN MATCHED THEN UPDATE SET " + ", ".join(f"t.{c} = s.{c}" for c in updates)
        sql += (
            f" WHEN NOT MATCHED THEN INSERT ({', '.join(columns)})"
            f" VALUES ({', '.join(f's.{c}' for c in columns)})"
        )
        return Statement(conn, sql, list(record.values()), dialect=self)

    def isolation_statement(self, level: IsolationLevel) -> str | None:
        return f"ALTER SESSION SET ISOLATION_LEVEL = {level.sql_name}"

    def release_savepoint_statement(self, name: str) -> str | None:
        return None
