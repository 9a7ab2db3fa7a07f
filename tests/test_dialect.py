"""Tests for dialects and the dialect registry."""

import sqlite3
from unittest.mock import MagicMock

import pytest

from entitydb.connection import IsolationLevel, ManagedConnection
from entitydb.core.errors import ConfigError, PreconditionError, UnsupportedError
from entitydb.dialect import (
    AnsiDialect,
    Dialect,
    MysqlDialect,
    OracleDialect,
    PostgresqlDialect,
    SqliteDialect,
    dialect_registry,
    detect_dialect_name,
    get_dialect,
)
from entitydb.entity import Entity
from entitydb.page import Direction, Order, Page
from entitydb.sql.builder import SqlBuilder
from entitydb.sql.query import Query


def fake_conn(dialect: Dialect) -> MagicMock:
    conn = MagicMock()
    conn.dialect = dialect
    return conn


def alice() -> Entity:
    return Entity.create("user").set("name", "Alice").set("age", 30)


def adults_page(page: Page) -> Query:
    return Query.of(Entity.create("user").set("age", "> 18")).set_page(page)


class TestFormatSql:
    def test_qmark_unchanged(self):
        sql = "SELECT * FROM t WHERE a = ? AND b LIKE '%x'"
        assert SqliteDialect().format_sql(sql) == sql

    def test_format_style(self):
        """?-placeholders become %s and literal percent signs are doubled."""
        assert (
            PostgresqlDialect().format_sql("a = ? AND b LIKE 'x%' AND c = '?'")
            == "a = %s AND b LIKE 'x%%' AND c = '?'"
        )

    def test_numeric_style(self):
        assert OracleDialect().format_sql("a = ? AND b = ? AND c = '?'") == "a = :1 AND b = :2 AND c = '?'"

    def test_placeholders(self):
        assert OracleDialect().placeholders(3) == ":1, :2, :3"
        assert MysqlDialect().placeholder(0) == "%s"


class TestStatements:
    def test_for_insert_sqlite_quotes(self):
        stmt = SqliteDialect().for_insert(fake_conn(SqliteDialect()), alice())
        assert stmt.sql == "INSERT INTO [user] ([name], [age]) VALUES (?, ?)"
        assert stmt.params == ["Alice", 30]

    def test_for_insert_postgres_returning(self):
        dialect = PostgresqlDialect()
        stmt = dialect.for_insert(fake_conn(dialect), alice(), generated_keys=True)
        assert stmt.sql == 'INSERT INTO "user" ("name", "age") VALUES (?, ?) RETURNING *'
        assert stmt.native_sql == 'INSERT INTO "user" ("name", "age") VALUES (%s, %s) RETURNING *'

    def test_native_sql_follows_building_dialect(self):
        """Placeholders come from the dialect that built the statement, not the connection's."""
        dialect = PostgresqlDialect()
        stmt = dialect.for_insert(fake_conn(SqliteDialect()), alice())
        assert stmt.dialect is dialect
        assert stmt.native_sql == 'INSERT INTO "user" ("name", "age") VALUES (%s, %s)'

    def test_for_insert_batch(self):
        dialect = AnsiDialect()
        records = [alice(), Entity.create("user").set("age", 5).set("name", "Bob")]
        stmt = dialect.for_insert_batch(fake_conn(dialect), records)
        assert stmt.sql == "INSERT INTO user (name, age) VALUES (?, ?)"
        assert stmt.batch == [["Alice", 30], ["Bob", 5]]

    def test_for_insert_batch_field_mismatch(self):
        dialect = AnsiDialect()
        with pytest.raises(PreconditionError):
            dialect.for_insert_batch(fake_conn(dialect), [alice(), Entity.create("user").set("name", "Bob")])

    def test_for_delete_requires_where(self):
        """A delete without conditions is refused before any SQL runs."""
        conn = fake_conn(AnsiDialect())
        with pytest.raises(PreconditionError, match="No 'WHERE' condition"):
            AnsiDialect().for_delete(conn, Query(tables="user"))
        conn.cursor.assert_not_called()

    def test_for_update(self):
        dialect = AnsiDialect()
        query = Query.of(Entity.create("user").set("id", 1))
        stmt = dialect.for_update(fake_conn(dialect), Entity.create("user").set("age", 31), query)
        assert stmt.sql == "UPDATE user SET age = ? WHERE id = ?"
        assert stmt.params == [31, 1]

    def test_for_update_requires_where(self):
        dialect = AnsiDialect()
        with pytest.raises(PreconditionError):
            dialect.for_update(fake_conn(dialect), alice(), Query(tables="user"))

    def test_for_find_requires_table(self):
        dialect = AnsiDialect()
        with pytest.raises(PreconditionError):
            dialect.for_find(fake_conn(dialect), Query())

    def test_for_count(self):
        dialect = SqliteDialect()
        stmt = dialect.for_count(fake_conn(dialect), Query.of(Entity.create("user").set("age", "> 18")))
        assert stmt.sql == "SELECT COUNT(1) FROM (SELECT * FROM [user] WHERE [age] > ?) entitydb_alias_count_"
        assert stmt.params == [18]

    def test_for_count_of_builder_keeps_builder(self):
        dialect = AnsiDialect()
        builder = SqlBuilder.of("SELECT * FROM t WHERE a = ?", 1)
        stmt = dialect.for_count(fake_conn(dialect), builder)
        assert stmt.sql == "SELECT COUNT(1) FROM (SELECT * FROM t WHERE a = ?) entitydb_alias_count_"
        assert builder.build() == "SELECT * FROM t WHERE a = ?"


class TestPaging:
    def test_ansi_limit_offset(self):
        dialect = AnsiDialect()
        stmt = dialect.for_page(fake_conn(dialect), adults_page(Page(2, 10, Order("id", Direction.DESC))))
        assert stmt.sql == "SELECT * FROM user WHERE age > ? ORDER BY id DESC LIMIT ? OFFSET ?"
        assert stmt.params == [18, 10, 20]

    def test_mysql_limit(self):
        dialect = MysqlDialect()
        stmt = dialect.for_page(fake_conn(dialect), adults_page(Page(2, 10)))
        assert stmt.sql == "SELECT * FROM `user` WHERE `age` > ? LIMIT ?, ?"
        assert stmt.params == [18, 20, 10]
        assert stmt.native_sql.endswith("LIMIT %s, %s")

    def test_oracle_fetch_next(self):
        dialect = OracleDialect()
        stmt = dialect.for_page(fake_conn(dialect), adults_page(Page(1, 5)))
        assert stmt.sql == "SELECT * FROM user WHERE age > ? OFFSET ? ROWS FETCH NEXT ? ROWS ONLY"
        assert stmt.params == [18, 5, 5]
        assert stmt.native_sql == "SELECT * FROM user WHERE age > :1 OFFSET :2 ROWS FETCH NEXT :3 ROWS ONLY"

    def test_no_page_is_plain_find(self):
        dialect = AnsiDialect()
        stmt = dialect.for_page(fake_conn(dialect), Query.of(Entity.create("user")))
        assert stmt.sql == "SELECT * FROM user"

    def test_page_sql_leaves_builder_untouched(self):
        dialect = AnsiDialect()
        builder = SqlBuilder.of("SELECT * FROM t")
        stmt = dialect.for_page_sql(fake_conn(dialect), builder, Page(0, 5))
        assert stmt.sql == "SELECT * FROM t LIMIT ? OFFSET ?"
        assert builder.params == []


class TestUpsert:
    def test_ansi_unsupported(self):
        dialect = AnsiDialect()
        with pytest.raises(UnsupportedError):
            dialect.for_upsert(fake_conn(dialect), alice(), ["name"])

    def test_sqlite(self):
        dialect = SqliteDialect()
        stmt = dialect.for_upsert(fake_conn(dialect), alice(), ["name"])
        assert stmt.sql == (
            "INSERT INTO [user] ([name], [age]) VALUES (?, ?) "
            "ON CONFLICT ([name]) DO UPDATE SET [age] = excluded.[age]"
        )

    def test_sqlite_only_keys(self):
        dialect = SqliteDialect()
        stmt = dialect.for_upsert(fake_conn(dialect), Entity.create("user").set("name", "A"), ["name"])
        assert stmt.sql.endswith("ON CONFLICT ([name]) DO NOTHING")

    def test_postgresql(self):
        dialect = PostgresqlDialect()
        stmt = dialect.for_upsert(fake_conn(dialect), alice(), ["name"])
        assert stmt.sql.endswith('ON CONFLICT ("name") DO UPDATE SET "age" = EXCLUDED."age"')

    def test_mysql(self):
        dialect = MysqlDialect()
        stmt = dialect.for_upsert(fake_conn(dialect), alice(), ["name"])
        assert stmt.sql.endswith("ON DUPLICATE KEY UPDATE `age` = VALUES(`age`)")

    def test_oracle_merge(self):
        dialect = OracleDialect()
        stmt = dialect.for_upsert(fake_conn(dialect), alice(), ["name"])
        assert stmt.sql.startswith("MERGE INTO user t USING (SELECT ? name, ? age FROM dual) s ON (t.name = s.name)")
        assert "WHEN MATCHED THEN UPDATE SET t.age = s.age" in stmt.sql
        assert stmt.params == ["Alice", 30]

    def test_keys_required(self):
        dialect = SqliteDialect()
        with pytest.raises(PreconditionError):
            dialect.for_upsert(fake_conn(dialect), alice(), [])


class TestSessionControl:
    def test_isolation_statements(self):
        level = IsolationLevel.SERIALIZABLE
        assert AnsiDialect().isolation_statement(level) == "SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"
        assert MysqlDialect().isolation_statement(IsolationLevel.READ_COMMITTED) == (
            "SET SESSION TRANSACTION ISOLATION LEVEL READ COMMITTED"
        )
        assert OracleDialect().isolation_statement(level) == "ALTER SESSION SET ISOLATION_LEVEL = SERIALIZABLE"
        assert SqliteDialect().isolation_statement(IsolationLevel.READ_UNCOMMITTED) == "PRAGMA read_uncommitted = 1"

    def test_savepoint_statements(self):
        dialect = PostgresqlDialect()
        assert dialect.savepoint_statement("sp_1") == "SAVEPOINT sp_1"
        assert dialect.rollback_to_savepoint_statement("sp_1") == "ROLLBACK TO SAVEPOINT sp_1"
        assert dialect.release_savepoint_statement("sp_1") == "RELEASE SAVEPOINT sp_1"
        assert OracleDialect().release_savepoint_statement("sp_1") is None

    def test_begin_statements(self):
        assert SqliteDialect().begin_statement() == "BEGIN"
        assert PostgresqlDialect().begin_statement() is None
        assert AnsiDialect().begin_statement() is None

    def test_set_wrapper(self):
        dialect = SqliteDialect()
        dialect.set_wrapper(None)
        assert dialect.for_insert(fake_conn(dialect), alice()).sql == "INSERT INTO user (name, age) VALUES (?, ?)"
        dialect.set_wrapper('"')
        assert dialect.for_insert(fake_conn(dialect), alice()).sql.startswith('INSERT INTO "user"')


class TestRegistry:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("sqlite", "sqlite"),
            ("sqlite3", "sqlite"),
            ("postgres", "postgresql"),
            ("PG", "postgresql"),
            ("mariadb", "mysql"),
            ("oracle", "oracle"),
            ("ansi", "ansi"),
        ],
    )
    def test_get_dialect_by_name(self, name, expected):
        assert get_dialect(name).name == expected

    def test_fresh_instance_per_call(self):
        """Dialects carry a quote wrapper, so each caller gets its own."""
        assert get_dialect("sqlite") is not get_dialect("sqlite")

    def test_dialect_instance_passes_through(self):
        dialect = MysqlDialect()
        assert get_dialect(dialect) is dialect

    def test_unknown_name(self):
        with pytest.raises(ConfigError, match="Unknown dialect"):
            get_dialect("db2")

    def test_detect_from_sqlite3_connection(self):
        raw = sqlite3.connect(":memory:")
        try:
            assert get_dialect(raw).name == "sqlite"
            assert detect_dialect_name(ManagedConnection(raw, SqliteDialect())) == "sqlite"
        finally:
            raw.close()

    def test_detect_unknown_driver(self):
        with pytest.raises(ConfigError):
            detect_dialect_name(object())

    def test_register_custom(self):
        class H2Dialect(AnsiDialect):
            @property
            def name(self) -> str:
                return "h2"

        dialect_registry.register("H2", H2Dialect)
        try:
            assert isinstance(get_dialect("h2"), H2Dialect)
            assert "h2" in dialect_registry.list_dialects()
        finally:
            dialect_registry._factories.pop("h2")
