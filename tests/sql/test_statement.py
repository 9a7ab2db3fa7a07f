"""Tests for Statement, SqlLog and the raw SQL executor."""

from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from entitydb.core.errors import ConstraintViolationError, PreconditionError, QueryError
from entitydb.dialect.postgresql import PostgresqlDialect
from entitydb.handlers import EntityListHandler, NumberHandler
from entitydb.sql.executor import SqlExecutor, convert_named
from entitydb.sql.statement import SqlLog, Statement


class TestConvertNamed:
    def test_simple(self):
        assert convert_named("SELECT * FROM user WHERE name = :name", {"name": "Alice"}) == (
            "SELECT * FROM user WHERE name = ?",
            ["Alice"],
        )

    def test_order_and_repeats(self):
        sql, values = convert_named("a = :x AND b = :y AND c = :x", {"x": 1, "y": 2})
        assert sql == "a = ? AND b = ? AND c = ?"
        assert values == [1, 2, 1]

    def test_sequence_expands(self):
        sql, values = convert_named("id IN (:ids)", {"ids": [1, 2, 3]})
        assert sql == "id IN (?, ?, ?)"
        assert values == [1, 2, 3]

    def test_literals_and_casts_untouched(self):
        """Names inside quotes and ::casts are not parameters."""
        sql, values = convert_named("SELECT ':skip', x::text FROM t WHERE a = :a", {"a": 5})
        assert sql == "SELECT ':skip', x::text FROM t WHERE a = ?"
        assert values == [5]

    def test_missing_name(self):
        with pytest.raises(PreconditionError, match="missing"):
            convert_named("a = :missing", {})


class TestStatement:
    def test_execute_update_and_generated_key(self, conn):
        """INSERT reports one row and the new rowid."""
        with Statement(conn, "INSERT INTO user (name, age) VALUES (?, ?)", ["Alice", 30]) as stmt:
            assert stmt.execute_update() == 1
            assert stmt.generated_keys() == [1]

    def test_auto_commit_commits_each_statement(self, conn, row_count):
        with Statement(conn, "INSERT INTO user (name) VALUES (?)", ["Alice"]) as stmt:
            stmt.execute_update()
        assert row_count() == 1

    def test_no_commit_without_auto_commit(self, conn, row_count):
        conn.auto_commit = False
        with Statement(conn, "INSERT INTO user (name) VALUES (?)", ["Alice"]) as stmt:
            stmt.execute_update()
        assert row_count() == 0
        conn.rollback()

    def test_execute_query(self, conn):
        Statement(conn, "INSERT INTO user (name, age) VALUES (?, ?)", ["Alice", 30]).execute_update()
        with Statement(conn, "SELECT name, age FROM user WHERE age > ?", [18]) as stmt:
            rows = stmt.execute_query(EntityListHandler())
        assert rows == [{"name": "Alice", "age": 30}]

    def test_execute_batch(self, conn, row_count):
        with Statement(conn, "INSERT INTO user (name) VALUES (?)", batch=[["a"], ["b"], ["c"]]) as stmt:
            assert stmt.execute_batch() == [1, 1, 1]
            assert stmt.generated_keys() == [1, 2, 3]
        assert row_count() == 3

    def test_driver_error_translated(self, conn):
        """Driver exceptions become DbError kinds with the SQL attached."""
        Statement(conn, "INSERT INTO user (name) VALUES (?)", ["Alice"]).execute_update()
        with pytest.raises(ConstraintViolationError) as exc_info:
            Statement(conn, "INSERT INTO user (name) VALUES (?)", ["Alice"]).execute_update()
        assert exc_info.value.context.sql == "INSERT INTO user (name) VALUES (?)"

    def test_bad_sql(self, conn):
        with pytest.raises(QueryError):
            Statement(conn, "SELECT * FROM nowhere").execute_query(NumberHandler())

    def test_handler_errors_propagate_unchanged(self, conn):
        def handler(cursor):
            raise KeyError("handler")

        with pytest.raises(KeyError):
            Statement(conn, "SELECT 1").execute_query(handler)

    def test_native_sql_uses_dialect_paramstyle(self):
        fake_conn = MagicMock()
        fake_conn.dialect = PostgresqlDialect()
        stmt = Statement(fake_conn, "SELECT * FROM t WHERE a = ? AND b LIKE 'x%'", [1])
        assert stmt.native_sql == "SELECT * FROM t WHERE a = %s AND b LIKE 'x%%'"

    def test_close_closes_cursor_once(self):
        fake_conn = MagicMock()
        fake_conn.dialect = PostgresqlDialect()
        stmt = Statement(fake_conn, "SELECT 1")
        cursor = stmt.cursor
        stmt.close()
        stmt.close()
        cursor.close.assert_called_once()


class TestSqlLog:
    def test_disabled_by_default(self):
        with capture_logs() as logs:
            SqlLog().log("SELECT 1", [1])
        assert logs == []

    def test_logs_sql_and_params(self):
        with capture_logs() as logs:
            SqlLog(show_sql=True, show_params=True, level="INFO").log("SELECT ?", [1])
        assert logs[0]["event"] == "sql"
        assert logs[0]["sql"] == "SELECT ?"
        assert logs[0]["params"] == [1]
        assert logs[0]["log_level"] == "info"

    def test_format_sql_breaks_clauses(self):
        with capture_logs() as logs:
            SqlLog(show_sql=True, format_sql=True).log("SELECT *   FROM user WHERE a = ? ORDER BY id")
        assert logs[0]["sql"] == "SELECT *\nFROM user\nWHERE a = ?\nORDER BY id"
        assert "params" not in logs[0]

    def test_statement_logs_through_sql_log(self, conn):
        with capture_logs() as logs:
            Statement(conn, "SELECT 1", sql_log=SqlLog(show_sql=True)).execute_query(NumberHandler())
        assert [entry["sql"] for entry in logs if entry["event"] == "sql"] == ["SELECT 1"]


class TestSqlExecutor:
    def test_execute_and_query(self, conn):
        executor = SqlExecutor()
        assert executor.execute(conn, "INSERT INTO user (name, age) VALUES (?, ?)", "Alice", 30) == 1
        assert executor.query(conn, "SELECT COUNT(*) FROM user", NumberHandler()) == 1

    def test_query_named(self, conn):
        executor = SqlExecutor()
        executor.execute_batch(conn, "INSERT INTO user (name, age) VALUES (?, ?)", [("a", 1), ("b", 2), ("c", 3)])
        rows = executor.query_named(
            conn, "SELECT name FROM user WHERE age IN (:ages) ORDER BY age", EntityListHandler(), {"ages": [1, 3]}
        )
        assert [row["name"] for row in rows] == ["a", "c"]

    def test_execute_for_generated_key(self, conn):
        key = SqlExecutor().execute_for_generated_key(conn, "INSERT INTO user (name) VALUES (?)", "Alice")
        assert key == 1

    def test_execute_batch_sqls(self, conn):
        counts = SqlExecutor().execute_batch_sqls(
            conn,
            [
                "INSERT INTO user (name) VALUES ('a')",
                "INSERT INTO user (name) VALUES ('b')",
                "UPDATE user SET age = 1",
            ],
        )
        assert counts == [1, 1, 2]

    def test_none_connection(self):
        with pytest.raises(ValueError):
            SqlExecutor().execute(None, "SELECT 1")
