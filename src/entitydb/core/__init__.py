"""Core building blocks shared by every entitydb module.

Modules
-------
errors      Typed error hierarchy and DB-API error translation
result      Ok / Err result type
logging     structlog configuration and ``get_logger``
settings    pydantic-settings ``DbSettings``
protocols   DB-API connection / cursor and ``RsHandler`` protocols
"""

from entitydb.core.errors import (
    CacheClosedError,
    ConfigError,
    ConnectionLostError,
    ConstraintViolationError,
    DbError,
    DbErrorKind,
    DbTimeoutError,
    EntityDbError,
    ErrorCategory,
    ErrorContext,
    PreconditionError,
    QueryError,
    TransactionError,
    UnsupportedError,
)
from entitydb.core.result import Err, Ok, Result, try_db_result, try_result

__all__ = [
    "CacheClosedError",
    "ConfigError",
    "ConnectionLostError",
    "ConstraintViolationError",
    "DbError",
    "DbErrorKind",
    "DbTimeoutError",
    "EntityDbError",
    "ErrorCategory",
    "ErrorContext",
    "PreconditionError",
    "QueryError",
    "TransactionError",
    "UnsupportedError",
    "Err",
    "Ok",
    "Result",
    "try_db_result",
    "try_result",
]
