"""Tests for Db: CRUD facade and Db.tx transactions."""

from unittest.mock import patch

import pytest
from pydantic import BaseModel
from structlog.testing import capture_logs

from entitydb.cache import ConnectionCache
from entitydb.connection import IsolationLevel
from entitydb.core.errors import (
    ConnectionLostError,
    ConstraintViolationError,
    DbError,
    TransactionError,
    UnsupportedError,
)
from entitydb.core.result import Err, Ok
from entitydb.core.settings import DbSettings
from entitydb.db import Db, Session
from entitydb.entity import Entity
from entitydb.page import Order, Page, PageResult
from entitydb.sql.condition import Condition, LikeType


class User(BaseModel):
    id: int
    name: str
    age: int | None = None


def user(name: str, age: int | None = None) -> Entity:
    return Entity.create("user").set("name", name).set("age", age)


@pytest.fixture
def people(db):
    db.insert_all([user("Alice", 30), user("Bob", 17), user("Carol", 45)])


class TestCrud:
    def test_insert_find_alice(self, db, row_count):
        """Alice is inserted, committed and found again."""
        assert db.insert(user("Alice", 30)) == 1
        assert row_count() == 1
        rows = db.find(Entity.create("user").set("name", "Alice"))
        assert rows == [{"id": 1, "name": "Alice", "age": 30}]

    def test_connection_released_after_each_call(self, db, cache):
        db.insert(user("Alice"))
        assert not cache.has_group()

    def test_get_and_get_by(self, db, people):
        assert db.get(Entity.create("user").set("name", "Bob"))["age"] == 17
        assert db.get_by("user", "name", "Carol")["id"] == 3
        assert db.get_by("user", "name", "Nobody") is None

    def test_find_variants(self, db, people):
        assert len(db.find_all("user")) == 3
        assert [r["name"] for r in db.find_by("user", "age", 17)] == ["Bob"]
        assert db.find(Entity.create("user").set("id", 1), fields=["name"]) == [{"name": "Alice"}]
        found = db.find_by_conditions("user", Condition("age", ">", 20), Condition("age", "<", 40))
        assert [r["name"] for r in found] == ["Alice"]

    def test_find_like(self, db, people):
        assert [r["name"] for r in db.find_like("user", "name", "Ca", LikeType.STARTS_WITH)] == ["Carol"]
        assert len(db.find_like("user", "name", "o")) == 2

    def test_find_beans(self, db, people):
        users = db.find_beans(Entity.create("user").set("name", "Alice"), User)
        assert users == [User(id=1, name="Alice", age=30)]

    def test_update_and_delete(self, db, people, row_count):
        assert db.update(Entity.create("user").set("age", 18), Entity.create("user").set("name", "Bob")) == 1
        assert db.get_by("user", "name", "Bob")["age"] == 18
        assert db.delete_by("user", "name", "Bob") == 1
        assert row_count() == 2

    def test_insert_or_update_and_upsert(self, db):
        db.insert_or_update(user("Alice", 30), "name")
        db.insert_or_update(user("Alice", 31), "name")
        db.upsert(user("Alice", 32), "name")
        db.upsert(user("Bob", 1), "name")
        assert db.count(Entity.create("user")) == 2
        assert db.get_by("user", "name", "Alice")["age"] == 32

    def test_generated_keys(self, db):
        assert db.insert_for_generated_key(user("Alice")) == 1
        assert db.insert_for_generated_keys(user("Bob")) == [2]

    def test_count(self, db, people):
        assert db.count(Entity.create("user").set("age", "> 20")) == 2
        assert db.count_sql("SELECT * FROM user WHERE age < ? ORDER BY age", 40) == 2


class TestRawSql:
    def test_query_helpers(self, db, people):
        assert db.query_number("SELECT COUNT(*) FROM user") == 3
        assert db.query_string("SELECT name FROM user WHERE id = ?", 2) == "Bob"
        assert db.query_one("SELECT name FROM user WHERE age > ? ORDER BY age", 20) == {"name": "Alice"}
        assert len(db.query("SELECT * FROM user WHERE age > ?", 10)) == 3
        assert db.query_beans(User, "SELECT * FROM user WHERE id = ?", 3) == [User(id=3, name="Carol", age=45)]

    def test_query_named(self, db, people):
        rows = db.query_named("SELECT name FROM user WHERE age >= :min ORDER BY age", {"min": 30})
        assert [r["name"] for r in rows] == ["Alice", "Carol"]

    def test_execute_variants(self, db, row_count):
        assert db.execute("INSERT INTO user (name) VALUES (?)", "Alice") == 1
        assert db.execute_for_generated_key("INSERT INTO user (name) VALUES (?)", "Bob") == 2
        assert db.execute_batch("INSERT INTO user (name) VALUES (?)", [["c"], ["d"]]) == [1, 1]
        assert db.execute_batch_sqls("UPDATE user SET age = 1", "DELETE FROM user WHERE name = 'd'") == [4, 1]
        assert row_count() == 3


class TestPaging:
    def test_page(self, db, people):
        result = db.page(Entity.create("user"), Page(0, 2, Order("age")))
        assert isinstance(result, PageResult)
        assert result.total == 3
        assert [r["name"] for r in result] == ["Bob", "Alice"]
        assert result.is_first()
        assert not result.is_last()

    def test_page_fields(self, db, people):
        result = db.page(Entity.create("user"), Page(1, 2, Order("age")), fields=["name"])
        assert list(result) == [{"name": "Carol"}]

    def test_page_for_entity_list(self, db, people):
        rows = db.page_for_entity_list(Entity.create("user"), Page(0, 1, Order("id")))
        assert not isinstance(rows, PageResult)
        assert [r["name"] for r in rows] == ["Alice"]

    def test_page_sql(self, db, people):
        result = db.page_sql("SELECT name FROM user WHERE age > ? ORDER BY age", Page(0, 1), 10)
        assert result.total == 3
        assert [r["name"] for r in result] == ["Bob"]


class TestTx:
    def test_commit(self, db, row_count):
        """A successful tx commits and returns Ok."""
        result = db.tx(lambda d: d.insert(user("Alice")) + d.insert(user("Bob")))
        assert result == Ok(2)
        assert row_count() == 2

    def test_rollback_on_error(self, db, row_count):
        """A failing tx rolls back everything it did and returns Err."""

        def work(d):
            d.insert(user("Alice"))
            raise ValueError("boom")

        result = db.tx(work)
        assert isinstance(result, Err)
        assert isinstance(result.error, TransactionError)
        assert isinstance(result.error.cause, ValueError)
        assert row_count() == 0

    def test_ddl_rolled_back_with_tx(self, db, row_count):
        """DDL run inside a failed tx is undone with the rest of it."""

        def work(d):
            d.execute("CREATE TABLE audit (id INTEGER PRIMARY KEY, note TEXT)")
            d.insert(user("Alice"))
            raise ValueError("boom")

        assert db.tx(work).is_err()
        assert row_count("sqlite_master", "type = ? AND name = ?", "table", "audit") == 0
        assert row_count() == 0

    def test_db_error_kind_preserved(self, db, row_count):
        def work(d):
            d.insert(user("Alice"))
            d.insert(user("Alice"))

        result = db.tx(work)
        assert isinstance(result.error, ConstraintViolationError)
        assert row_count() == 0

    def test_operations_share_one_connection(self, db, cache, ds):
        seen = []

        def work(d):
            seen.append(cache.cached(ds))
            d.insert(user("Alice"))
            seen.append(cache.cached(ds))
            return d.count(Entity.create("user"))

        assert db.tx(work).unwrap() == 1
        assert seen[0] is seen[1]
        assert seen[0].is_closed()

    def test_auto_commit_restored_and_released(self, db, cache, ds):
        """After tx the connection is back in auto-commit and released."""
        seen = []

        def work(d):
            conn = cache.cached(ds)
            seen.append(conn.auto_commit)
            return conn

        conn = db.tx(work).unwrap()
        assert seen == [False]
        assert conn.auto_commit is True
        assert conn.is_closed()
        assert not cache.has_group()

    def test_auto_commit_restored_after_failure(self, db, cache, ds):
        captured = []

        def work(d):
            captured.append(cache.cached(ds))
            raise RuntimeError("x")

        assert db.tx(work).is_err()
        assert captured[0].auto_commit is True
        assert not cache.has_group()

    def test_nested_tx_shares_connection(self, db, row_count):
        """An inner tx runs on the outer connection and its commit is durable."""
        connections = []

        def outer(d):
            connections.append(d.get_connection())
            d.tx(lambda inner: connections.append(inner.get_connection()) or inner.insert(user("Inner")))
            raise RuntimeError("outer fails")

        assert db.tx(outer).is_err()
        assert connections[0] is connections[1]
        assert row_count() == 1

    def test_isolation_only_raised(self, db):
        """A weaker level than the connection's current one is not applied."""
        assert db.tx(lambda d: d.insert(user("A")), IsolationLevel.READ_COMMITTED).is_ok()

    def test_unsupported_isolation(self, db, cache):
        """Raising to a level the backend lacks fails before func runs."""
        calls = []
        db.get_connection().transaction_isolation = IsolationLevel.READ_UNCOMMITTED
        result = db.tx(calls.append, IsolationLevel.REPEATABLE_READ)
        assert isinstance(result.error, UnsupportedError)
        assert calls == []
        assert not cache.has_group()

    def test_rollback_failure_logged_and_attached(self, db, cache, row_count):
        """A failed rollback is logged, attached to the error and the connection closed."""
        conn = db.get_connection()

        def work(d):
            d.insert(user("Alice"))
            raise ValueError("boom")

        with patch.object(conn, "rollback", side_effect=RuntimeError("rollback broke")):
            with capture_logs() as logs:
                result = db.tx(work)

        assert isinstance(result.error, TransactionError)
        assert "rollback broke" in result.error.context.metadata["rollback_error"]
        assert any(entry["event"] == "rollback_failed" for entry in logs)
        assert conn.is_closed()
        assert row_count() == 0
        assert not cache.has_group()

    def test_transaction_context_manager(self, db, row_count):
        with db.transaction() as d:
            d.insert(user("Alice"))
        assert row_count() == 1

        with pytest.raises(TransactionError):
            with db.transaction() as d:
                d.insert(user("Bob"))
                raise ValueError("boom")
        assert row_count() == 1

    def test_transaction_context_manager_reraises_db_error(self, db):
        db.insert(user("Alice"))
        with pytest.raises(ConstraintViolationError):
            with db.transaction() as d:
                d.insert(user("Alice"))

    def test_no_transaction_support(self, ds, cache):
        ds.dialect.supports_transactions = False
        database = Db(ds, cache=cache)
        result = database.tx(lambda d: None)
        assert isinstance(result.error, UnsupportedError)
        assert not cache.has_group()


class TestConstruction:
    def test_of_url_owns_data_source(self, tmp_path):
        path = tmp_path / "owned.db"
        with Db.of(str(path)) as database:
            database.execute("CREATE TABLE t (v INTEGER)")
            database.execute("INSERT INTO t VALUES (?)", 1)
            assert database.query_number("SELECT v FROM t") == 1
        assert path.exists()

    def test_of_memory(self):
        """An in-memory data source keeps its data across connections."""
        with Db.of("memory") as database:
            database.execute("CREATE TABLE t (v INTEGER)")
            database.execute("INSERT INTO t VALUES (1)")
            assert database.query_number("SELECT COUNT(*) FROM t") == 1

    def test_from_settings(self, tmp_path):
        settings = DbSettings(url=f"sqlite:///{tmp_path / 's.db'}", quote_char='"', show_sql=True)
        with Db.from_settings(settings) as database:
            assert database.dialect.name == "sqlite"
            assert database.dialect.quote_wrapper.pre == '"'
            assert database.runner.sql_log.show_sql is True

    def test_private_cache_shut_down_on_close(self, ds):
        database = Db(ds)
        conn = database.get_connection()
        database.close()
        assert conn.is_closed()
        assert not database.cache.is_active

    def test_shared_cache_survives_close(self, ds, cache):
        Db(ds, cache=cache).close()
        assert cache.is_active

    def test_dialect_copied_from_data_source(self, ds, cache):
        database = Db(ds, cache=cache).disable_wrapper()
        assert not database.dialect.quote_wrapper.enabled
        assert ds.dialect.quote_wrapper.enabled

    def test_session_shares_cache(self, db, cache):
        session = db.session()
        assert isinstance(session, Session)
        assert session.cache is cache

    def test_closed_cache_gives_err(self, ds):
        cache = ConnectionCache()
        database = Db(ds, cache=cache)
        cache.shutdown()
        result = database.tx(lambda d: None)
        assert isinstance(result.error, DbError)

    def test_operations_on_closed_connection(self, db):
        conn = db.get_connection()
        conn.auto_commit = False
        conn.close()
        with pytest.raises(ConnectionLostError):
            conn.commit()
