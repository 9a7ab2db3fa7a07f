"""ManagedConnection: DB-API connection with the session state DB-API lacks.

DB-API 2.0 connections expose ``cursor``/``commit``/``rollback``/``close``
and nothing else.  ``ManagedConnection`` adds what the cache and the
transaction layer need on top:

    - ``is_closed()``       set once ``close()`` ran through the wrapper
    - ``auto_commit``       emulated; each statement is committed while True
    - ``transaction_isolation``  get / set an ``IsolationLevel``
    - savepoints            ``SAVEPOINT`` / ``ROLLBACK TO`` / ``RELEASE``
    - ``metadata``          what the backend supports, from the dialect

Switching ``auto_commit`` off opens a transaction with the dialect's
``begin_statement`` (when it has one) so DDL and savepoints join it.
Switching it back on commits pending work, the same as JDBC
``setAutoCommit(true)``.

Architecture::

    ┌─────────────────────────────────────────────────────────┐
    │ ManagedConnection                                       │
    │   raw ──────────► DB-API connection (sqlite3, psycopg2, │
    │                   pool proxy ...)                       │
    │   dialect ──────► isolation / savepoint SQL, metadata   │
    │   _auto_commit, _closed, _isolation                     │
    └─────────────────────────────────────────────────────────┘
             ▲                         ▲
       Statement.execute_*       ConnectionCache / Db.tx
       → statement_completed()   → auto_commit, is_closed()

Tags:
    connection, db-api, transaction, savepoint, entitydb

Doc-Types:
    api-reference
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, Any

from entitydb.core.errors import ConnectionLostError, UnsupportedError, is_driver_error, translate_driver_error
from entitydb.core.logging import get_logger

if TYPE_CHECKING:
    from entitydb.dialect.base import Dialect

logger = get_logger(__name__)


class IsolationLevel(IntEnum):
    """Transaction isolation levels; a higher value is stricter."""

    NONE = 0
    READ_UNCOMMITTED = 1
    READ_COMMITTED = 2
    REPEATABLE_READ = 4
    SERIALIZABLE = 8

    @property
    def sql_name(self) -> str:
        return self.name.replace("_", " ")


@dataclass(frozen=True)
class Savepoint:
    name: str


@dataclass(frozen=True)
class ConnectionMetadata:
    """Capabilities of the backend behind a connection."""

    dialect_name: str
    supports_transactions: bool = True
    supports_savepoints: bool = True
    default_isolation: IsolationLevel = IsolationLevel.READ_COMMITTED
    supported_isolation_levels: frozenset[IsolationLevel] = field(default_factory=frozenset)

    def supports_isolation_level(self, level: IsolationLevel) -> bool:
        return level in self.supported_isolation_levels


class ManagedConnection:
    """Wrapper owning the closed / auto-commit / isolation state of ``raw``.

    Args:
        raw: DB-API 2.0 connection
        dialect: dialect used for statements and control SQL
        name: data source name, for logging
    """

    def __init__(self, raw: Any, dialect: Dialect, *, name: str | None = None):
        self.raw = raw
        self.dialect = dialect
        self.name = name
        self._closed = False
        self._auto_commit = True
        self._isolation = dialect.default_isolation
        self._savepoint_ids = itertools.count(1)

    # ------------------------------------------------------------------ state

    def is_closed(self) -> bool:
        return self._closed

    @property
    def auto_commit(self) -> bool:
        return self._auto_commit

    @auto_commit.setter
    def auto_commit(self, value: bool) -> None:
        self._ensure_open()
        value = bool(value)
        if value == self._auto_commit:
            return
        if value:
            self._end(self.raw.commit)
            self._auto_commit = True
        else:
            self._auto_commit = False
            try:
                self._begin()
            except BaseException:
                self._auto_commit = True
                raise

    def set_auto_commit(self, value: bool) -> None:
        self.auto_commit = value

    @property
    def metadata(self) -> ConnectionMetadata:
        d = self.dialect
        return ConnectionMetadata(
            dialect_name=d.name,
            supports_transactions=d.supports_transactions,
            supports_savepoints=d.supports_savepoints,
            default_isolation=d.default_isolation,
            supported_isolation_levels=frozenset(d.supported_isolation_levels),
        )

    @property
    def transaction_isolation(self) -> IsolationLevel:
        return self._isolation

    @transaction_isolation.setter
    def transaction_isolation(self, level: IsolationLevel | int) -> None:
        level = IsolationLevel(level)
        if level == self._isolation:
            return
        if not self.metadata.supports_isolation_level(level):
            raise UnsupportedError(
                f"Transaction isolation [{level.name}] not supported by {self.dialect.name}"
            )
        statement = self.dialect.isolation_statement(level)
        if statement:
            self._execute_control(statement)
        self._isolation = level

    # ------------------------------------------------------------------ DB-API

    def cursor(self) -> Any:
        self._ensure_open()
        try:
            return self.raw.cursor()
        except Exception as exc:
            if is_driver_error(exc):
                raise translate_driver_error(exc) from exc
            raise

    def commit(self) -> None:
        """Commit; with auto-commit off the next transaction starts right away."""
        self._end(self.raw.commit)
        if not self._auto_commit:
            self._begin()

    def rollback(self) -> None:
        self._end(self.raw.rollback)
        if not self._auto_commit:
            self._begin()

    def statement_completed(self) -> None:
        """Commit after a statement when auto-commit is on."""
        if self._auto_commit:
            self.commit()

    def close(self) -> None:
        """Close the raw connection; later calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        self.raw.close()
        logger.debug("connection_closed", data_source=self.name)

    # ------------------------------------------------------------------ savepoints

    def set_savepoint(self, name: str | None = None) -> Savepoint:
        self._require_savepoints()
        savepoint = Savepoint(name or f"sp_{next(self._savepoint_ids)}")
        self._execute_control(self.dialect.savepoint_statement(savepoint.name))
        return savepoint

    def rollback_to(self, savepoint: Savepoint) -> None:
        self._require_savepoints()
        self._execute_control(self.dialect.rollback_to_savepoint_statement(savepoint.name))

    def release_savepoint(self, savepoint: Savepoint) -> None:
        self._require_savepoints()
        statement = self.dialect.release_savepoint_statement(savepoint.name)
        if statement:
            self._execute_control(statement)

    # ------------------------------------------------------------------ internals

    def _require_savepoints(self) -> None:
        if not self.dialect.supports_savepoints:
            raise UnsupportedError(f"Savepoints not supported by {self.dialect.name}")

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConnectionLostError("Connection is closed").with_context(data_source=self.name)

    def _end(self, finish: Any) -> None:
        self._ensure_open()
        try:
            finish()
        except Exception as exc:
            if is_driver_error(exc):
                raise translate_driver_error(exc) from exc
            raise

    def _begin(self) -> None:
        # without an explicit BEGIN sqlite3 autocommits DDL and SAVEPOINT
        statement = self.dialect.begin_statement()
        if statement and getattr(self.raw, "in_transaction", None) is not True:
            self._execute_control(statement)

    def _execute_control(self, sql: str) -> None:
        cursor = self.cursor()
        try:
            cursor.execute(sql)
        except Exception as exc:
            if is_driver_error(exc):
                raise translate_driver_error(exc, sql=sql) from exc
            raise
        finally:
            cursor.close()

    def __enter__(self) -> ManagedConnection:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"ManagedConnection(name={self.name!r}, dialect={self.dialect.name!r}, {state}, auto_commit={self._auto_commit})"


__all__ = [
    "ConnectionMetadata",
    "IsolationLevel",
    "ManagedConnection",
    "Savepoint",
]
