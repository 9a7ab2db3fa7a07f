"""Data source over any DB-API ``connect`` callable.

    ds = DbApiDataSource(lambda: psycopg2.connect(dsn), "postgresql")
    ds = DbApiDataSource(functools.partial(pymysql.connect, host="db"))

Without an explicit dialect, the dialect is detected from the driver
module of the first connection.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from entitydb.connection import ManagedConnection
from entitydb.core.errors import is_driver_error, translate_driver_error
from entitydb.dialect.base import Dialect
from entitydb.dialect.registry import get_dialect
from entitydb.ds.base import DataSource


class DbApiDataSource(DataSource):
    def __init__(
        self,
        connect: Callable[[], Any],
        dialect: str | Dialect | None = None,
        *,
        name: str | None = None,
    ):
        self.connect = connect
        self._dialect = get_dialect(dialect) if dialect is not None else None
        self.name = name or getattr(connect, "__name__", type(self).__name__)

    @property
    def dialect(self) -> Dialect:
        if self._dialect is None:
            # detection needs one live connection
            self.get_connection().close()
        return self._dialect  # type: ignore[return-value]

    def get_connection(self) -> ManagedConnection:
        try:
            raw = self.connect()
        except Exception as exc:
            if is_driver_error(exc):
                raise translate_driver_error(exc).with_context(data_source=self.name) from exc
            raise
        if self._dialect is None:
            self._dialect = get_dialect(raw)
        return ManagedConnection(raw, self._dialect, name=self.name)


__all__ = ["DbApiDataSource"]
