"""Per-thread connection cache.

``ConnectionCache`` hands every thread its own ``GroupedConnection``: a
small map from data source to the one connection that thread is currently
using for it.  Calls made by one thread against one data source reuse the
same connection until it is released, and a connection inside an open
transaction (``auto_commit`` off) is never released.

The cache is an explicit service rather than a module-level singleton::

    cache = ConnectionCache().init()
    conn = cache.get(ds)       # opens on first use
    conn2 = cache.get(ds)      # same object
    cache.close(ds)            # closes it unless mid-transaction
    cache.shutdown()           # closes everything, every thread

Manifesto:
    - **Thread confinement:** each thread owns its map; no connection is
      shared between threads, so lookups need no lock
    - **Transaction safe:** ``close`` keeps connections with
      ``auto_commit`` off, which is what lets ``Db.tx`` and ``Session``
      run many operations on one connection
    - **Bounded:** a thread's group is dropped once it is empty
    - **Explicit lifecycle:** ``init()`` / ``shutdown()``; use outside that
      window raises ``CacheClosedError``

Architecture::

    ConnectionCache
      ├── _local: threading.local ──► group (this thread)
      └── _groups: every live group (for shutdown)

    GroupedConnection (one per thread)
      └── {DataSource: ManagedConnection}

Guardrails:
    ❌ DON'T: share a cache between event-loop tasks that migrate threads
    ✅ DO: one connection cache per application or test

    ❌ DON'T: leave ``auto_commit`` off without commit / rollback;
       the connection stays cached for the life of the thread
    ✅ DO: use ``Db.tx`` / ``Session`` which restore it in ``finally``

Tags:
    connection-cache, thread-local, transaction, entitydb

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import threading
from typing import Any

from entitydb.connection import ManagedConnection
from entitydb.core.errors import CacheClosedError
from entitydb.core.logging import get_logger
from entitydb.ds.base import DataSource

logger = get_logger(__name__)


class GroupedConnection:
    """One thread's connections, at most one per data source."""

    def __init__(self) -> None:
        self._connections: dict[DataSource, ManagedConnection] = {}

    def get(self, ds: DataSource) -> ManagedConnection:
        """Cached connection for ``ds``, replaced when missing or closed."""
        conn = self._connections.get(ds)
        if conn is None or conn.is_closed():
            conn = ds.get_connection()
            self._connections[ds] = conn
        return conn

    def cached(self, ds: DataSource) -> ManagedConnection | None:
        return self._connections.get(ds)

    def close(self, ds: DataSource) -> None:
        """Close the connection for ``ds`` unless a transaction is open on it."""
        conn = self._connections.get(ds)
        if conn is None:
            return
        if not conn.is_closed() and not conn.auto_commit:
            return
        del self._connections[ds]
        _close_quietly(conn, ds)

    def is_empty(self) -> bool:
        return not self._connections

    def close_all(self) -> None:
        """Close every connection, rolling back open transactions."""
        for ds, conn in list(self._connections.items()):
            if not conn.is_closed() and not conn.auto_commit:
                logger.warning("closing_connection_in_transaction", data_source=ds.name)
                try:
                    conn.rollback()
                except Exception as exc:
                    logger.warning("rollback_failed", data_source=ds.name, error=str(exc))
            _close_quietly(conn, ds)
        self._connections.clear()

    def __len__(self) -> int:
        return len(self._connections)

    def __repr__(self) -> str:
        return f"GroupedConnection({[ds.name for ds in self._connections]!r})"


def _close_quietly(conn: ManagedConnection, ds: DataSource) -> None:
    try:
        conn.close()
    except Exception as exc:
        logger.warning("connection_close_failed", data_source=ds.name, error=str(exc))


class ConnectionCache:
    """Per-thread, per-data-source connection cache with an explicit lifecycle.

    Args:
        name: label used in logs
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._local = threading.local()
        self._groups: set[GroupedConnection] = set()
        self._lock = threading.Lock()
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def init(self) -> ConnectionCache:
        """Activate the cache; calling it again is a no-op."""
        with self._lock:
            if not self._active:
                self._active = True
                logger.debug("connection_cache_started", cache=self.name)
        return self

    def shutdown(self) -> None:
        """Close all cached connections of all threads and deactivate."""
        with self._lock:
            was_active = self._active
            self._active = False
            groups = list(self._groups)
            self._groups.clear()
            self._local = threading.local()
        for group in groups:
            group.close_all()
        if was_active:
            logger.debug("connection_cache_stopped", cache=self.name, groups=len(groups))

    def get(self, ds: DataSource) -> ManagedConnection:
        """Get or open the calling thread's connection for ``ds``.

        Raises:
            CacheClosedError: the cache is not active
            DbError: the data source failed to connect
        """
        if not self._active:
            raise CacheClosedError(f"Connection cache [{self.name}] is not active").with_context(
                data_source=ds.name
            )
        return self._group(create=True).get(ds)  # type: ignore[union-attr]

    def close(self, ds: DataSource) -> None:
        """Release the calling thread's connection for ``ds``.

        Connections with ``auto_commit`` off stay open and cached.  The
        thread's group is discarded once it holds no connection.
        """
        group = self._group(create=False)
        if group is None:
            return
        group.close(ds)
        if group.is_empty():
            del self._local.group
            with self._lock:
                self._groups.discard(group)

    def cached(self, ds: DataSource) -> ManagedConnection | None:
        """The calling thread's cached connection for ``ds``, without opening one."""
        group = self._group(create=False)
        return None if group is None else group.cached(ds)

    def has_group(self) -> bool:
        """Whether the calling thread currently holds a group."""
        return self._group(create=False) is not None

    def _group(self, create: bool) -> GroupedConnection | None:
        group = getattr(self._local, "group", None)
        if group is None and create:
            group = GroupedConnection()
            self._local.group = group
            with self._lock:
                self._groups.add(group)
        return group

    def __enter__(self) -> ConnectionCache:
        return self.init()

    def __exit__(self, *args: Any) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return f"ConnectionCache(name={self.name!r}, active={self._active}, groups={len(self._groups)})"


__all__ = [
    "ConnectionCache",
    "GroupedConnection",
]
