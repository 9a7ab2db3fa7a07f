"""SQL dialects.

Modules
-------
base        ``Dialect`` base class and ``AnsiDialect``
sqlite      SQLite
postgresql  PostgreSQL
mysql       MySQL / MariaDB
oracle      Oracle
registry    ``DialectRegistry`` and ``get_dialect``
"""

from entitydb.dialect.base import AnsiDialect, Dialect
from entitydb.dialect.mysql import MysqlDialect
from entitydb.dialect.oracle import OracleDialect
from entitydb.dialect.postgresql import PostgresqlDialect
from entitydb.dialect.registry import DialectRegistry, detect_dialect_name, dialect_registry, get_dialect
from entitydb.dialect.sqlite import SqliteDialect

__all__ = [
    "AnsiDialect",
    "Dialect",
    "DialectRegistry",
    "MysqlDialect",
    "OracleDialect",
    "PostgresqlDialect",
    "SqliteDialect",
    "detect_dialect_name",
    "dialect_registry",
    "get_dialect",
]
