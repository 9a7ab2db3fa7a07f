"""Dialect registry and factory.

Manifesto:
    Callers name a backend (``"postgres"``, ``"sqlite3"`` ...) or hand over
    a live connection; they never import dialect classes.  Dialects carry
    per-``Db`` state (the quote wrapper), so the registry stores classes
    and ``create()`` returns a fresh instance each time.

Features:
    - ``DialectRegistry`` with pre-registered defaults and aliases
    - ``register()`` for custom / third-party dialects
    - ``get_dialect()``: name, dialect or DB-API connection → dialect

Tags:
    dialect, registry, factory, entitydb

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from entitydb.core.errors import ConfigError

from .base import AnsiDialect, Dialect
from .mysql import MysqlDialect
from .oracle import OracleDialect
from .postgresql import PostgresqlDialect
from .sqlite import SqliteDialect

# driver module root → dialect name
_DRIVER_MODULES = {
    "sqlite3": "sqlite",
    "pysqlite2": "sqlite",
    "psycopg2": "postgresql",
    "psycopg": "postgresql",
    "pg8000": "postgresql",
    "pymysql": "mysql",
    "MySQLdb": "mysql",
    "mysql": "mysql",
    "mariadb": "mysql",
    "oracledb": "oracle",
    "cx_Oracle": "oracle",
}


class DialectRegistry:
    """
    Registry for dialect classes.

    Pre-registered dialects:
    - ``ansi``
    - ``sqlite`` / ``sqlite3``
    - ``postgresql`` / ``postgres`` / ``pg``
    - ``mysql`` / ``mariadb``
    - ``oracle``
    """

    def __init__(self):
        self._factories: dict[str, type[Dialect]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self._factories["ansi"] = AnsiDialect
        self._factories["sqlite"] = SqliteDialect
        self._factories["sqlite3"] = SqliteDialect  # Alias
        self._factories["postgresql"] = PostgresqlDialect
        self._factories["postgres"] = PostgresqlDialect  # Alias
        self._factories["pg"] = PostgresqlDialect  # Alias
        self._factories["mysql"] = MysqlDialect
        self._factories["mariadb"] = MysqlDialect  # Alias
        self._factories["oracle"] = OracleDialect

    def register(self, name: str, dialect_class: type[Dialect]) -> None:
        """Register a dialect class."""
        self._factories[name.lower()] = dialect_class

    def create(self, name: str, **kwargs: Any) -> Dialect:
        """Create a dialect by name."""
        key = name.strip().lower()
        if key not in self._factories:
            raise ConfigError(f"Unknown dialect: {name}").with_context(available=self.list_dialects())
        return self._factories[key](**kwargs)

    def list_dialects(self) -> list[str]:
        """List registered dialect names."""
        return sorted(self._factories.keys())


# Global registry
dialect_registry = DialectRegistry()


def _driver_connection(conn: Any, depth: int = 0) -> Any:
    # ManagedConnection and SQLAlchemy pool proxies wrap the driver connection
    if depth >= 3:
        return conn
    for attr in ("raw", "dbapi_connection", "driver_connection"):
        inner = getattr(conn, attr, None)
        if inner is not None and inner is not conn:
            return _driver_connection(inner, depth + 1)
    return conn


def detect_dialect_name(conn: Any) -> str:
    """Dialect name for a DB-API connection, from its driver module."""
    dialect = getattr(conn, "dialect", None)
    if isinstance(dialect, Dialect):
        return dialect.name
    module = type(_driver_connection(conn)).__module__ or ""
    root = module.split(".", 1)[0]
    if root in _DRIVER_MODULES:
        return _DRIVER_MODULES[root]
    raise ConfigError(f"Cannot detect dialect for connection of module [{module}]")


def get_dialect(name_or_conn: str | Dialect | Any) -> Dialect:
    """
    Get a dialect by name, or detect it from a connection.

    Example:
        >>> get_dialect("postgres").name
        'postgresql'
        >>> import sqlite3
        >>> get_dialect(sqlite3.connect(":memory:")).name
        'sqlite'

    Raises:
        ConfigError: unknown name or undetectable driver
    """
    if isinstance(name_or_conn, Dialect):
        return name_or_conn
    if isinstance(name_or_conn, str):
        return dialect_registry.create(name_or_conn)
    return dialect_registry.create(detect_dialect_name(name_or_conn))


__all__ = [
    "DialectRegistry",
    "detect_dialect_name",
    "dialect_registry",
    "get_dialect",
]
