"""Pooled data source backed by a SQLAlchemy engine.

SQLAlchemy is used for its connection pool only: ``get_connection()``
borrows a raw DB-API connection with ``engine.raw_connection()`` and
closing the ``ManagedConnection`` returns it to the pool (the pool rolls
back anything left uncommitted).

    ds = PooledDataSource("postgresql+psycopg2://app:pw@localhost/app", pool_size=10)
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError

from entitydb.connection import ManagedConnection
from entitydb.core.errors import ConfigError, is_driver_error, translate_driver_error
from entitydb.core.logging import get_logger
from entitydb.dialect.base import Dialect
from entitydb.dialect.registry import get_dialect
from entitydb.ds.base import DataSource

logger = get_logger(__name__)


def create_pool_engine(
    url: str,
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    pool_timeout: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with pool settings.

    Pool parameters are ignored for SQLite, which gets
    ``check_same_thread=False`` and ``PRAGMA foreign_keys=ON`` instead.
    """
    try:
        if url.startswith("sqlite"):
            kwargs.setdefault("connect_args", {"check_same_thread": False})
            engine = create_engine(url, echo=echo, **kwargs)

            @event.listens_for(engine, "connect")
            def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            return engine

        pool_kwargs: dict[str, Any] = {}
        if pool_size is not None:
            pool_kwargs["pool_size"] = pool_size
        if max_overflow is not None:
            pool_kwargs["max_overflow"] = max_overflow
        if pool_timeout is not None:
            pool_kwargs["pool_timeout"] = pool_timeout

        return create_engine(url, echo=echo, **pool_kwargs, **kwargs)
    except (ArgumentError, NoSuchModuleError, ImportError) as exc:
        raise ConfigError(f"Cannot create engine for [{_masked(url)}]: {exc}", cause=exc) from exc


def _masked(url: str) -> str:
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return url


class PooledDataSource(DataSource):
    """Data source drawing connections from a SQLAlchemy pool.

    Args:
        url: SQLAlchemy database URL
        pool_size: pooled connections kept open
        max_overflow: extra connections allowed under load
        pool_timeout: seconds to wait for a free connection
        echo: SQLAlchemy engine echo
        dialect: force a dialect, detected from the engine otherwise
        name: label for logs, defaults to the masked URL
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: int | None = None,
        max_overflow: int | None = None,
        pool_timeout: int | None = None,
        echo: bool = False,
        dialect: str | Dialect | None = None,
        name: str | None = None,
        **engine_kwargs: Any,
    ):
        self.url = url
        self.name = name or _masked(url)
        self.engine = create_pool_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            **engine_kwargs,
        )
        self._dialect = get_dialect(dialect if dialect is not None else self.engine.dialect.name)
        logger.debug("pool_created", data_source=self.name, dialect=self._dialect.name)

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    def get_connection(self) -> ManagedConnection:
        try:
            raw = self.engine.raw_connection()
        except Exception as exc:
            if is_driver_error(exc):
                raise translate_driver_error(exc).with_context(data_source=self.name) from exc
            raise
        return ManagedConnection(raw, self._dialect, name=self.name)

    def close(self) -> None:
        self.engine.dispose()
        logger.debug("pool_disposed", data_source=self.name)


__all__ = [
    "PooledDataSource",
    "create_pool_engine",
]
