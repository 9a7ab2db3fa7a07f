"""SQLite data source (``sqlite3``).

File databases open one ``sqlite3`` connection per ``get_connection()``.
``:memory:`` databases use a named shared-cache URI and keep one anchor
connection open, so every connection of the data source sees the same
data until ``close()``.

Usage::

    ds = SqliteDataSource("app.db")
    with ds.get_connection() as conn:
        ...
"""

from __future__ import annotations

import itertools
import sqlite3
from pathlib import Path

from entitydb.connection import ManagedConnection
from entitydb.core.errors import translate_driver_error
from entitydb.core.logging import get_logger
from entitydb.dialect.sqlite import SqliteDialect
from entitydb.ds.base import DataSource

logger = get_logger(__name__)

_memory_ids = itertools.count(1)


class SqliteDataSource(DataSource):
    """SQLite data source.

    Args:
        path: database file path or ``:memory:``
        timeout: seconds to wait on a locked database
        foreign_keys: enable ``PRAGMA foreign_keys`` on each connection
        name: label for logs, defaults to the path
    """

    def __init__(
        self,
        path: str | Path = ":memory:",
        *,
        timeout: float = 5.0,
        foreign_keys: bool = True,
        name: str | None = None,
    ):
        self.path = str(path)
        self.timeout = timeout
        self.foreign_keys = foreign_keys
        self.name = name or self.path
        self._dialect = SqliteDialect()
        self._anchor: sqlite3.Connection | None = None

        if self.is_memory:
            self._target = f"file:entitydb_mem_{next(_memory_ids)}?mode=memory&cache=shared"
            self._anchor = self._connect()
        else:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            self._target = str(Path(self.path).resolve())

    @property
    def is_memory(self) -> bool:
        return self.path in ("", ":memory:")

    @property
    def dialect(self) -> SqliteDialect:
        return self._dialect

    def _connect(self) -> sqlite3.Connection:
        try:
            raw = sqlite3.connect(
                self._target,
                timeout=self.timeout,
                check_same_thread=False,
                uri=self.is_memory,
            )
            if self.foreign_keys:
                raw.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as exc:
            raise translate_driver_error(exc).with_context(data_source=self.name) from exc
        return raw

    def get_connection(self) -> ManagedConnection:
        return ManagedConnection(self._connect(), self._dialect, name=self.name)

    def close(self) -> None:
        if self._anchor is not None:
            self._anchor.close()
            self._anchor = None
            logger.debug("memory_database_released", data_source=self.name)


__all__ = ["SqliteDataSource"]
