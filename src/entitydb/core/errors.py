"""
Structured error types for entitydb.

Every failure raised by the library is an ``EntityDbError``.  Database
failures are ``DbError`` instances that carry an explicit ``DbErrorKind``
so callers can branch on *what* went wrong without parsing driver
messages or importing driver modules.

Manifesto:
    - **Typed hierarchy:** one class per failure kind, one base for all
    - **Driver-agnostic:** DB-API exceptions of any driver are translated
      into the same kinds (``translate_driver_error``)
    - **Explicit retry semantics:** connection loss and timeouts are
      retryable, constraint violations never are
    - **Error chaining:** the driver exception is preserved as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                      EntityDbError                            │
        │        (category, retryable, context, cause)                  │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  ConfigError            DbError (kind)                        │
        │  (CONFIG)               (DATABASE)                            │
        │                              │                                │
        │      ConstraintViolationError   ConnectionLostError           │
        │      DbTimeoutError             UnsupportedError              │
        │      PreconditionError          QueryError                    │
        │      TransactionError           CacheClosedError              │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> err = PreconditionError("Empty entity provided!")
    >>> err.kind
    <DbErrorKind.OTHER: 'OTHER'>
    >>> ConnectionLostError("gone").retryable
    True

Tags:
    error-handling, exception-hierarchy, db-api, entitydb

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Coarse error categories used for routing and logging."""

    DATABASE = "DATABASE"
    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


class DbErrorKind(str, Enum):
    """
    Variant set for database failures.

    Every ``DbError`` carries exactly one kind.  The kind is what callers
    branch on; the concrete class only adds defaults.

    Attributes:
        CONSTRAINT_VIOLATION: unique / foreign key / not-null violations
        CONNECTION_LOST: the connection is closed or the link dropped
        TIMEOUT: lock wait, busy database, statement timeout
        UNSUPPORTED: feature missing in the backend or dialect
        OTHER: everything else (bad SQL, preconditions, wrapped errors)
    """

    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    CONNECTION_LOST = "CONNECTION_LOST"
    TIMEOUT = "TIMEOUT"
    UNSUPPORTED = "UNSUPPORTED"
    OTHER = "OTHER"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set end up in ``to_dict()``; anything without a
    dedicated field goes into ``metadata``.

    Attributes:
        operation: runner / db operation name (``insert``, ``tx`` ...)
        table: table the operation targeted
        sql: statement text, when one was built
        params: bound parameters
        data_source: data source name
        metadata: additional key-value pairs
    """

    operation: str | None = None
    table: str | None = None
    sql: str | None = None
    params: Sequence[Any] | None = None
    data_source: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["operation", "table", "sql", "data_source"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.params is not None:
            result["params"] = list(self.params)
        if self.metadata:
            result.update(self.metadata)
        return result


class EntityDbError(Exception):
    """
    Base exception for all entitydb errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may override both per instance.

    Args:
        message: human readable description
        category: overrides ``default_category``
        retryable: overrides ``default_retryable``
        context: structured metadata
        cause: underlying exception, chained as ``__cause__``
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> EntityDbError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueryError("Failed").with_context(table="user", sql=sql)
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(EntityDbError):
    """Invalid settings, unknown dialect or malformed database URL."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DbError(EntityDbError):
    """
    Database operation failure.

    ``kind`` defaults to the subclass's ``default_kind`` and can be
    overridden, which is how ``translate_driver_error`` produces a plain
    ``DbError`` for kinds without a dedicated class.
    """

    default_category = ErrorCategory.DATABASE
    default_retryable = False
    default_kind: DbErrorKind = DbErrorKind.OTHER

    def __init__(self, message: str, *, kind: DbErrorKind | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.kind = kind or self.default_kind

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["kind"] = self.kind.value
        return result


class ConstraintViolationError(DbError):
    """Integrity constraint violated (unique, foreign key, not null)."""

    default_kind = DbErrorKind.CONSTRAINT_VIOLATION
    default_category = ErrorCategory.VALIDATION


class ConnectionLostError(DbError):
    """Connection closed or dropped."""

    default_kind = DbErrorKind.CONNECTION_LOST
    default_retryable = True


class DbTimeoutError(DbError):
    """Lock wait, busy database or statement timeout."""

    default_kind = DbErrorKind.TIMEOUT
    default_retryable = True


class UnsupportedError(DbError):
    """Transaction, isolation level, savepoint or upsert not supported."""

    default_kind = DbErrorKind.UNSUPPORTED


class PreconditionError(DbError):
    """
    Guard failure detected before any statement is built.

    Raised for empty records, empty ``where`` entities (full table delete /
    update guard) and missing table names.
    """

    default_category = ErrorCategory.VALIDATION


class QueryError(DbError):
    """Driver-level failure that maps onto no more specific kind."""

    pass


class TransactionError(DbError):
    """Non-database exception raised inside a transactional function."""

    pass


class CacheClosedError(DbError):
    """Connection cache used before ``init()`` or after ``shutdown()``."""

    pass


# =============================================================================
# DRIVER ERROR TRANSLATION
# =============================================================================

# PEP 249 exception names; every DB-API driver exposes this hierarchy.
_DBAPI_ERROR_NAMES = frozenset(
    {
        "Warning",
        "Error",
        "InterfaceError",
        "DatabaseError",
        "DataError",
        "OperationalError",
        "IntegrityError",
        "InternalError",
        "ProgrammingError",
        "NotSupportedError",
    }
)

_TIMEOUT_MARKERS = ("timeout", "timed out", "locked", "busy", "deadlock", "lock wait")
_CONNECTION_MARKERS = ("closed", "connection reset", "server has gone away", "broken pipe")


def _dbapi_names(exc: BaseException) -> set[str]:
    return {
        cls.__name__
        for cls in type(exc).__mro__
        if cls.__module__ != "builtins" and cls.__name__ in _DBAPI_ERROR_NAMES
    }


def is_driver_error(exc: BaseException) -> bool:
    """Check whether ``exc`` belongs to a DB-API driver's exception hierarchy."""
    return bool(_dbapi_names(exc))


def translate_driver_error(
    exc: BaseException,
    *,
    sql: str | None = None,
    params: Sequence[Any] | None = None,
) -> DbError:
    """
    Map a DB-API exception onto a ``DbError`` kind.

    Matching is done on the PEP 249 class names found in the exception's
    MRO, so ``sqlite3``, ``psycopg2``, ``pymysql`` and ``oracledb`` errors
    are all handled without importing any of them.
    """
    names = _dbapi_names(exc)
    message = str(exc) or type(exc).__name__
    lowered = message.lower()
    context = ErrorContext(sql=sql, params=params)

    if "IntegrityError" in names:
        return ConstraintViolationError(message, context=context, cause=exc)
    if "NotSupportedError" in names:
        return UnsupportedError(message, context=context, cause=exc)
    if "InterfaceError" in names or any(m in lowered for m in _CONNECTION_MARKERS):
        return ConnectionLostError(message, context=context, cause=exc)
    if "OperationalError" in names and any(m in lowered for m in _TIMEOUT_MARKERS):
        return DbTimeoutError(message, context=context, cause=exc)
    return QueryError(message, context=context, cause=exc)


def as_db_error(exc: BaseException, *, message: str | None = None) -> DbError:
    """
    Coerce any exception into a ``DbError``.

    ``DbError`` instances pass through, driver errors are translated and
    everything else is wrapped in ``TransactionError``.
    """
    if isinstance(exc, DbError):
        return exc
    if is_driver_error(exc):
        return translate_driver_error(exc)
    return TransactionError(message or f"{type(exc).__name__}: {exc}", cause=exc)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, EntityDbError):
        return error.retryable
    if is_driver_error(error):
        return translate_driver_error(error).retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, EntityDbError):
        return error.category
    if is_driver_error(error):
        return ErrorCategory.DATABASE
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "DbErrorKind",
    "ErrorContext",
    "EntityDbError",
    "ConfigError",
    "DbError",
    "ConstraintViolationError",
    "ConnectionLostError",
    "DbTimeoutError",
    "UnsupportedError",
    "PreconditionError",
    "QueryError",
    "TransactionError",
    "CacheClosedError",
    "is_driver_error",
    "translate_driver_error",
    "as_db_error",
    "is_retryable",
    "categorize_error",
]
