"""Prepared statements over a ``ManagedConnection``.

``Statement`` is what a dialect returns from ``for_insert`` / ``for_find``
and friends: SQL text written with ``?`` placeholders, its bound values and
the connection to run it on.  The statement owns exactly one cursor, which
it closes; it never closes the connection.

    stmt = dialect.for_find(conn, query)
    with stmt:
        rows = stmt.execute_query(EntityListHandler())

Driver exceptions are translated into ``DbError`` kinds; exceptions raised
by result handlers propagate unchanged.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

from entitydb.core.errors import is_driver_error, translate_driver_error
from entitydb.core.logging import get_logger

if TYPE_CHECKING:
    from entitydb.connection import ManagedConnection
    from entitydb.core.protocols import RsHandler
    from entitydb.core.settings import DbSettings
    from entitydb.dialect.base import Dialect

T = TypeVar("T")

logger = get_logger(__name__)

_CLAUSE_BREAK = re.compile(
    r"\s+(FROM|WHERE|GROUP BY|HAVING|ORDER BY|LIMIT|OFFSET|VALUES|SET|"
    r"(?:INNER|LEFT|RIGHT|FULL) JOIN|ON CONFLICT|ON DUPLICATE KEY|UNION)\b",
    re.IGNORECASE,
)


class SqlLog:
    """Statement logging switches.

    Args:
        show_sql: log each statement
        format_sql: break statements onto one line per clause
        show_params: include bound parameters
        level: log level name used for the ``sql`` event
    """

    def __init__(
        self,
        show_sql: bool = False,
        format_sql: bool = False,
        show_params: bool = False,
        level: str = "DEBUG",
    ):
        self.show_sql = show_sql
        self.format_sql = format_sql
        self.show_params = show_params
        self.level = level.lower()

    @classmethod
    def from_settings(cls, settings: DbSettings) -> SqlLog:
        return cls(settings.show_sql, settings.format_sql, settings.show_params, settings.sql_level)

    def log(self, sql: str, params: Any = None) -> None:
        if not self.show_sql:
            return
        if self.format_sql:
            sql = _CLAUSE_BREAK.sub(lambda m: "\n" + m.group(1), " ".join(sql.split()))
        fields: dict[str, Any] = {"sql": sql}
        if self.show_params and params is not None:
            fields["params"] = params
        getattr(logger, self.level)("sql", **fields)

    def __repr__(self) -> str:
        return (
            f"SqlLog(show_sql={self.show_sql}, format_sql={self.format_sql}, "
            f"show_params={self.show_params}, level={self.level!r})"
        )


class Statement:
    """One statement bound to a connection.

    Args:
        conn: connection to execute on (never closed here)
        sql: statement text with ``?`` placeholders
        params: bound values for a single execution
        batch: parameter sets for ``execute_batch``
        sql_log: statement logging, ``None`` for none
        dialect: dialect that built ``sql``; defaults to the connection's
    """

    def __init__(
        self,
        conn: ManagedConnection,
        sql: str,
        params: Iterable[Any] = (),
        *,
        batch: Iterable[Sequence[Any]] | None = None,
        sql_log: SqlLog | None = None,
        dialect: Dialect | None = None,
    ):
        self.conn = conn
        self.sql = sql
        self.params = list(params)
        self.batch = [list(p) for p in batch] if batch is not None else None
        self.sql_log = sql_log
        self.dialect = dialect or conn.dialect
        self.native_sql = self.dialect.format_sql(sql)
        self._cursor: Any = None
        self._generated_keys: list[Any] = []

    @property
    def cursor(self) -> Any:
        if self._cursor is None:
            self._cursor = self.conn.cursor()
        return self._cursor

    # ------------------------------------------------------------------ execution

    def execute_update(self) -> int:
        """Run an INSERT / UPDATE / DELETE; returns the affected row count."""
        cursor = self._execute(self.params)
        count = cursor.rowcount
        self._collect_keys(cursor)
        self.conn.statement_completed()
        if count is None or count < 0:
            return len(self._generated_keys)
        return count

    def execute_batch(self) -> list[int]:
        """Run once per parameter set; returns one affected count per set."""
        counts: list[int] = []
        for params in self.batch if self.batch is not None else [self.params]:
            cursor = self._execute(params)
            counts.append(cursor.rowcount)
            self._collect_keys(cursor)
        self.conn.statement_completed()
        return counts

    def execute_query(self, handler: RsHandler[T]) -> T:
        """Run a query and hand the live cursor to ``handler``."""
        cursor = self._execute(self.params)
        result = handler(cursor)
        self.conn.statement_completed()
        return result

    def generated_keys(self) -> list[Any]:
        """Keys generated by the last execution (``lastrowid`` or ``RETURNING``)."""
        return list(self._generated_keys)

    def close(self) -> None:
        if self._cursor is not None:
            cursor, self._cursor = self._cursor, None
            cursor.close()

    # ------------------------------------------------------------------ internals

    def _execute(self, params: Sequence[Any]) -> Any:
        if self.sql_log is not None:
            self.sql_log.log(self.sql, params)
        cursor = self.cursor
        try:
            cursor.execute(self.native_sql, tuple(params))
        except Exception as exc:
            if not is_driver_error(exc):
                raise
            self._abort_auto_commit()
            raise translate_driver_error(exc, sql=self.sql, params=params) from exc
        return cursor

    def _collect_keys(self, cursor: Any) -> None:
        if cursor.description is not None:
            self._generated_keys.extend(row[0] for row in cursor.fetchall())
            return
        last = getattr(cursor, "lastrowid", None)
        if last is not None and last != 0:
            self._generated_keys.append(last)

    def _abort_auto_commit(self) -> None:
        # a failed statement in auto-commit mode must not leave work pending
        if not self.conn.auto_commit or self.conn.is_closed():
            return
        try:
            self.conn.rollback()
        except Exception as exc:
            logger.warning("statement_rollback_failed", error=str(exc), sql=self.sql)

    def __enter__(self) -> Statement:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Statement(sql={self.sql!r}, params={self.params!r})"


__all__ = [
    "SqlLog",
    "Statement",
]
