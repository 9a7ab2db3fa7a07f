"""
Shared pytest fixtures for entitydb tests.

This module provides:
- A file-backed SQLite data source with a ``user`` table per test
- A connection cache, ``Db``, ``Session`` and ``DialectRunner`` over it
- ``row_count``: reads a table through an independent ``sqlite3``
  connection, so tests can check what was actually committed

Usage:
    def test_insert(db, row_count):
        db.insert(Entity.create("user").set("name", "Alice"))
        assert row_count() == 1
"""

import sqlite3
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from entitydb.cache import ConnectionCache
from entitydb.connection import ManagedConnection
from entitydb.db import Db, Session
from entitydb.dialect.sqlite import SqliteDialect
from entitydb.ds.sqlite import SqliteDataSource
from entitydb.runner import DialectRunner

USER_DDL = """
CREATE TABLE user (
    id   INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    age  INTEGER
)
"""


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a fresh SQLite database with the ``user`` table."""
    path = tmp_path / "entitydb_test.db"
    raw = sqlite3.connect(path)
    try:
        raw.execute(USER_DDL)
        raw.commit()
    finally:
        raw.close()
    return path


@pytest.fixture
def ds(db_path: Path) -> Generator[SqliteDataSource, None, None]:
    data_source = SqliteDataSource(db_path, name="test")
    yield data_source
    data_source.close()


@pytest.fixture
def cache() -> Generator[ConnectionCache, None, None]:
    connection_cache = ConnectionCache(name="test").init()
    yield connection_cache
    connection_cache.shutdown()


@pytest.fixture
def db(ds: SqliteDataSource, cache: ConnectionCache) -> Generator[Db, None, None]:
    database = Db(ds, cache=cache)
    yield database
    database.close()


@pytest.fixture
def session(ds: SqliteDataSource, cache: ConnectionCache) -> Generator[Session, None, None]:
    sess = Session(ds, cache=cache)
    yield sess
    sess.close()


@pytest.fixture
def conn(ds: SqliteDataSource) -> Generator[ManagedConnection, None, None]:
    connection = ds.get_connection()
    yield connection
    connection.close()


@pytest.fixture
def runner() -> DialectRunner:
    return DialectRunner(SqliteDialect())


@pytest.fixture
def row_count(db_path: Path) -> Callable[..., int]:
    """Count committed rows through a connection entitydb does not manage."""

    def count(table: str = "user", where: str = "", *params: object) -> int:
        raw = sqlite3.connect(db_path)
        try:
            sql = f"SELECT COUNT(*) FROM {table}" + (f" WHERE {where}" if where else "")
            return raw.execute(sql, params).fetchone()[0]
        finally:
            raw.close()

    return count
