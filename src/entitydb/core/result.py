"""
Ok / Err outcomes for units of work.

``Db.tx``, ``Session.tx`` and the quiet rollbacks report failure by
returning ``Err`` rather than raising.  The error inside a database
``Err`` is a ``DbError``, so ``result.kind`` says what went wrong without
an ``isinstance`` ladder.

Manifesto:
    - **Failure in the signature:** a transaction that can fail says so
    - **Rolled back means returned:** the caller sees the error after the
      connection is already clean
    - **Pattern-match friendly:** ``match result: case Ok(v): ...``

Examples:
    >>> from entitydb.core.result import Ok, Err
    >>> Ok(2).map(lambda x: x * 2).unwrap()
    4
    >>> Err(ValueError("bad")).unwrap_or(0)
    0

    Pattern matching::

        match db.tx(transfer):
            case Ok(rows):
                ...
            case Err(error):
                log.warning("transfer_failed", kind=error.kind.value)

Tags:
    result-type, transaction, entitydb

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from entitydb.core.errors import DbError, DbErrorKind, EntityDbError, as_db_error

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """A unit of work that committed, holding its return value."""

    value: T

    @property
    def kind(self) -> None:
        return None

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def unwrap_or_else(self, f: Callable[[Exception], T]) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Ok(f(self.value))

    def and_then(self, f: Callable[[T], Result[U]]) -> Result[U]:
        """Run the next step only after a success."""
        return f(self.value)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """A unit of work that failed and was rolled back."""

    error: Exception

    @property
    def kind(self) -> DbErrorKind | None:
        """Failure kind of a ``DbError``, ``None`` for other exceptions."""
        return self.error.kind if isinstance(self.error, DbError) else None

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Re-raise the stored error."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_or_else(self, f: Callable[[Exception], T]) -> T:
        return f(self.error)

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Err(self.error)

    def and_then(self, f: Callable[[T], Result[U]]) -> Result[U]:
        return Err(self.error)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.error, EntityDbError):
            error = self.error.to_dict()
        else:
            error = {"error_type": type(self.error).__name__, "message": str(self.error)}
        return {"ok": False, "error": error}

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def try_result(f: Callable[[], T]) -> Result[T]:
    """
    Call ``f`` and capture its return value or exception.

    >>> try_result(lambda: int("3")).unwrap()
    3
    >>> try_result(lambda: int("x")).is_err()
    True
    """
    try:
        return Ok(f())
    except Exception as e:
        return Err(e)


def try_db_result(f: Callable[[], T]) -> Result[T]:
    """``try_result`` whose error is always a ``DbError`` (driver errors translated)."""
    try:
        return Ok(f())
    except Exception as e:
        return Err(as_db_error(e))


__all__ = [
    "Ok",
    "Err",
    "Result",
    "try_result",
    "try_db_result",
]
