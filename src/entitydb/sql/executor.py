"""Raw SQL execution on an open connection."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

from entitydb.core.errors import PreconditionError
from entitydb.sql.statement import SqlLog, Statement

if TYPE_CHECKING:
    from entitydb.connection import ManagedConnection
    from entitydb.core.protocols import RsHandler

T = TypeVar("T")

# quoted literals are matched first so names inside them are left alone
_NAMED_PARAM = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|::|(?<![:\w]):([A-Za-z_]\w*)")


def convert_named(sql: str, params: Mapping[str, Any]) -> tuple[str, list[Any]]:
    """Rewrite ``:name`` parameters into ``?`` with values in order.

    >>> convert_named("SELECT * FROM user WHERE name = :name", {"name": "Alice"})
    ('SELECT * FROM user WHERE name = ?', ['Alice'])

    Sequence values expand to ``?, ?, ...`` so ``IN (:ids)`` works.
    """
    values: list[Any] = []

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name is None:
            return match.group(0)
        if name not in params:
            raise PreconditionError(f"No value for named parameter [{name}]").with_context(sql=sql)
        value = params[name]
        if isinstance(value, (list, tuple, set, frozenset)):
            values.extend(value)
            return ", ".join("?" for _ in value)
        values.append(value)
        return "?"

    return _NAMED_PARAM.sub(replace, sql), values


class SqlExecutor:
    """Executes caller-written SQL; never opens or closes the connection."""

    def __init__(self, sql_log: SqlLog | None = None):
        self.sql_log = sql_log

    def _statement(self, conn: ManagedConnection, sql: str, params: Iterable[Any] = (), **kwargs: Any) -> Statement:
        if conn is None:
            raise ValueError("Connection is None!")
        return Statement(conn, sql, params, sql_log=self.sql_log, **kwargs)

    def query(self, conn: ManagedConnection, sql: str, handler: RsHandler[T], *params: Any) -> T:
        with self._statement(conn, sql, params) as stmt:
            return stmt.execute_query(handler)

    def query_named(
        self, conn: ManagedConnection, sql: str, handler: RsHandler[T], params: Mapping[str, Any]
    ) -> T:
        sql, values = convert_named(sql, params)
        return self.query(conn, sql, handler, *values)

    def execute(self, conn: ManagedConnection, sql: str, *params: Any) -> int:
        with self._statement(conn, sql, params) as stmt:
            return stmt.execute_update()

    def execute_for_generated_key(self, conn: ManagedConnection, sql: str, *params: Any) -> Any:
        """Execute and return the first generated key, or ``None``."""
        with self._statement(conn, sql, params) as stmt:
            stmt.execute_update()
            keys = stmt.generated_keys()
        return keys[0] if keys else None

    def execute_batch(
        self, conn: ManagedConnection, sql: str, params_batch: Iterable[Sequence[Any]]
    ) -> list[int]:
        with self._statement(conn, sql, batch=params_batch) as stmt:
            return stmt.execute_batch()

    def execute_batch_sqls(self, conn: ManagedConnection, sqls: Iterable[str]) -> list[int]:
        """Run several parameterless statements; one count per statement."""
        counts = []
        for sql in sqls:
            with self._statement(conn, sql) as stmt:
                counts.append(stmt.execute_update())
        return counts


__all__ = [
    "SqlExecutor",
    "convert_named",
]
