"""MySQL / MariaDB dialect: ``%s`` placeholders (PyMySQL, mysqlclient), backtick quoting."""

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


class MysqlDialect(Dialect):
    paramstyle = "format"
    default_isolation = IsolationLevel.REPEATABLE_READ
    default_quote = ("`", "`")

    @property
    def name(self) -> str:
        return "mysql"

    def wrap_page_sql(self, builder: SqlBuilder, page: Page) -> SqlBuilder:
        return builder.append(" LIMIT ?, ?").add_params(page.start_position, page.page_size)

    def for_upsert(self, conn: ManagedConnection, record: Entity, keys: Sequence[str]) -> Statement:
        # MySQL resolves the conflict from the table's unique keys itself
        columns, updates = self._upsert_parts(record, keys)
        builder = self._builder().insert(record)
        targets = updates or columns
        assignments = ", ".join(f"{c} = VALUES({c})" for c in targets)
        builder.append(f" ON DUPLICATE KEY UPDATE {assignments}")
        return self._statement(conn, builder)

    def isolation_statement(self, level: IsolationLevel) -> str | None:
        return f"SET SESSION TRANSACTION ISOLATION LEVEL {level.sql_name}"
