"""PostgreSQL dialect: ``%s`` placeholders (psycopg2 / psycopg), ``"name"`` quoting."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from entitydb.connection import IsolationLevel
from entitydb.dialect.base import Dialect
from entitydb.entity import Entity
from entitydb.sql.builder import SqlBuilder
from entitydb.sql.statement import Statement

if TYPE_CHECKING:
    from entitydb.connection import ManagedConnection


class PostgresqlDialect(Dialect):
    """PostgreSQL.

    Generated keys come back through ``RETURNING *``; the first column of
    each returned row is reported as the key.
    """

    paramstyle = "format"
    default_isolation = IsolationLevel.READ_COMMITTED
    default_quote = ('"', '"')

    @property
    def name(self) -> str:
        return "postgresql"

    def returning_keys(self, builder: SqlBuilder) -> SqlBuilder:
        return builder.append(" RETURNING *")

    def for_upsert(self, conn: ManagedConnection, record: Entity, keys: Sequence[str]) -> Statement:
        _, updates = self._upsert_parts(record, keys)
        wrap = self.quote_wrapper.wrap
        builder = self._builder().insert(record)
        conflict = ", ".join(wrap(k) for k in keys)  # type: ignore[misc]
        if updates:
            assignments = ", ".join(f"{c} = EXCLUDED.{c}" for c in updates)
            builder.append(f" ON CONFLICT ({conflict}) DO UPDATE SET {assignments}")
        else:
            builder.append(f" ON CONFLICT ({conflict}) DO NOTHING")
        return self._statement(conn, builder)

    def isolation_statement(self, level: IsolationLevel) -> str | None:
        return f"SET SESSION CHARACTERISTICS AS TRANSACTION ISOLATION LEVEL {level.sql_name}"
