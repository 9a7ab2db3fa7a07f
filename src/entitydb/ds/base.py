"""DataSource: factory of managed connections.

A data source is the key of the connection cache: one cached connection
per (thread, data source).  Equality and hashing are by identity.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from entitydb.connection import ManagedConnection
from entitydb.dialect.base import Dialect


class DataSource(ABC):
    """Produces ``ManagedConnection`` objects for one database.

    Attributes:
        name: label used in logs and error context
    """

    name: str

    @property
    @abstractmethod
    def dialect(self) -> Dialect:
        """Dialect of the database behind this data source."""

    @abstractmethod
    def get_connection(self) -> ManagedConnection:
        """Open (or borrow from a pool) a connection.

        Raises:
            DbError: the driver failed to connect
        """

    def close(self) -> None:
        """Release resources held by the data source itself."""

    def __enter__(self) -> DataSource:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


__all__ = ["DataSource"]
