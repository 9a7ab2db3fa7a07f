"""SQLite dialect: ``?`` placeholders, ``[name]`` quoting, ``ON CONFLICT`` upsert."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from entitydb.connection import IsolationLevel
from entitydb.dialect.base import Dialect
from entitydb.entity import Entity
from entitydb.sql.statement import Statement

if TYPE_CHECKING:
    from entitydb.connection import ManagedConnection


class SqliteDialect(Dialect):
    """SQLite (``sqlite3`` module).

    SQLite is serializable by default; the only weaker level it offers is
    ``READ UNCOMMITTED`` through ``PRAGMA read_uncommitted`` (shared-cache
    connections only).
    """

    paramstyle = "qmark"
    default_isolation = IsolationLevel.SERIALIZABLE
    supported_isolation_levels = frozenset({IsolationLevel.READ_UNCOMMITTED, IsolationLevel.SERIALIZABLE})
    default_quote = ("[", "]")

    @property
    def name(self) -> str:
        return "sqlite"

    def for_upsert(self, conn: ManagedConnection, record: Entity, keys: Sequence[str]) -> Statement:
        _, updates = self._upsert_parts(record, keys)
        wrap = self.quote_wrapper.wrap
        builder = self._builder().insert(record)
        conflict = ", ".join(wrap(k) for k in keys)  # type: ignore[misc]
        if updates:
            assignments = ", ".join(f"{c} = excluded.{c}" for c in updates)
            builder.append(f" ON CONFLICT ({conflict}) DO UPDATE SET {assignments}")
        else:
            builder.append(f" ON CONFLICT ({conflict}) DO NOTHING")
        return self._statement(conn, builder)

    def begin_statement(self) -> str | None:
        return "BEGIN"

    def isolation_statement(self, level: IsolationLevel) -> str | None:
        return f"PRAGMA read_uncommitted = {1 if level == IsolationLevel.READ_UNCOMMITTED else 0}"
