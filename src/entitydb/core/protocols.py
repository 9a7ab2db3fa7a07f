"""
Structural protocols shared across entitydb.

Manifesto:
    Protocols define contracts without inheritance.  Any DB-API 2.0 driver
    (``sqlite3``, ``psycopg2``, ``pymysql``, ``oracledb``) satisfies
    ``DbApiConnection`` and ``Cursor`` as-is, and any callable taking a
    cursor satisfies ``RsHandler``.

Architecture:
    ::

        protocols.py
        ├── Cursor          : PEP 249 cursor subset used by statements
        ├── DbApiConnection : PEP 249 connection subset wrapped by
        │                      ManagedConnection
        └── RsHandler       : result-set visitor: cursor -> T

Guardrails:
    ❌ DON'T: Import driver modules to type-annotate connections
    ✅ DO: Annotate with ``DbApiConnection`` / ``Cursor``

Tags:
    protocols, db-api, pep-249, entitydb

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

T_co = TypeVar("T_co", covariant=True)


@runtime_checkable
class Cursor(Protocol):
    """PEP 249 cursor subset."""

    @property
    def description(self) -> Sequence[Sequence[Any]] | None: ...

    @property
    def rowcount(self) -> int: ...

    def execute(self, sql: str, params: Any = ...) -> Any: ...

    def executemany(self, sql: str, params: Sequence[Any]) -> Any: ...

    def fetchone(self) -> Any: ...

    def fetchall(self) -> list[Any]: ...

    def close(self) -> None: ...


@runtime_checkable
class DbApiConnection(Protocol):
    """PEP 249 connection subset.

    Implementations:
        - ``sqlite3.Connection``
        - ``psycopg2.extensions.connection``
        - SQLAlchemy ``PoolProxiedConnection`` (``engine.raw_connection()``)
    """

    def cursor(self) -> Any: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class RsHandler(Protocol[T_co]):
    """Result-set visitor.

    Called with a cursor on which a query was just executed; returns an
    application value (entities, models, a number ...).  The caller closes
    the cursor after the handler returns or raises.
    """

    def __call__(self, cursor: Cursor) -> T_co: ...


__all__ = [
    "Cursor",
    "DbApiConnection",
    "RsHandler",
]
