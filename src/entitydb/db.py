"""Db and Session: connection-managing facades over ``DialectRunner``.

Every operation obtains the calling thread's connection from the
``ConnectionCache``, delegates to the runner (or the raw SQL executor) and
releases the connection in ``finally``.  Release is a no-op while a
transaction is open, so all operations inside ``Db.tx`` or between
``Session.begin_transaction()`` and ``commit()`` share one connection.

Transaction states::

    IDLE (auto_commit on)
      │ begin_transaction() / tx()
      ▼
    ACTIVE (auto_commit off) ── commit() ──► COMMITTED ──┐
      │                                                    │ auto_commit restored,
      └──────────────── rollback() ──► ROLLED_BACK ────────┤ connection released
                                                           ▼
                                                         IDLE

``Db.tx`` returns a ``Result`` instead of raising::

    result = db.tx(lambda d: d.insert(Entity.create("user").set("name", "Alice")))
    if result.is_err():
        log.error("insert_failed", kind=result.error.kind)

Failed rollbacks never replace the original error: they are logged as
``rollback_failed`` and attached to the returned error under
``error.context.metadata["rollback_error"]``.

Tags:
    db, session, transaction, crud, entitydb

Doc-Types:
    - API Reference
    - Transaction Guide
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any, TypeVar

from entitydb.cache import ConnectionCache
from entitydb.connection import IsolationLevel, ManagedConnection, Savepoint
from entitydb.core.errors import DbError, UnsupportedError, as_db_error
from entitydb.core.logging import get_logger
from entitydb.core.protocols import RsHandler
from entitydb.core.result import Err, Ok, Result
from entitydb.core.settings import DbSettings, load_settings
from entitydb.dialect.base import Dialect
from entitydb.dialect.registry import get_dialect
from entitydb.ds.base import DataSource
from entitydb.ds.factory import create_data_source
from entitydb.entity import Entity
from entitydb.handlers import (
    BeanListHandler,
    EntityHandler,
    EntityListHandler,
    NumberHandler,
    StringHandler,
)
from entitydb.page import Page
from entitydb.runner import DialectRunner
from entitydb.sql.builder import SqlBuilder
from entitydb.sql.condition import Condition, LikeType, build_like_value
from entitydb.sql.executor import SqlExecutor
from entitydb.sql.query import Query
from entitydb.sql.statement import SqlLog
from entitydb.sql.wrapper import QuoteWrapper

T = TypeVar("T")
M = TypeVar("M")

logger = get_logger(__name__)


class AbstractDb:
    """CRUD and raw SQL operations over one data source.

    Args:
        ds: data source
        dialect: dialect name or instance, the data source's by default
        cache: shared connection cache; a private one is created otherwise
        sql_log: statement logging
        case_insensitive: lowercase column names of entity results
    """

    def __init__(
        self,
        ds: DataSource,
        dialect: str | Dialect | None = None,
        *,
        cache: ConnectionCache | None = None,
        sql_log: SqlLog | None = None,
        case_insensitive: bool = False,
    ):
        self.ds = ds
        if dialect is None:
            dialect = copy.copy(ds.dialect)
        self.runner = DialectRunner(get_dialect(dialect), sql_log=sql_log, case_insensitive=case_insensitive)
        self.executor = SqlExecutor(sql_log)
        self.case_insensitive = case_insensitive
        self._owns_cache = cache is None
        self.cache = cache if cache is not None else ConnectionCache(name=ds.name)
        self.cache.init()
        self._owns_ds = False
        self._transaction_supported: bool | None = None

    @property
    def dialect(self) -> Dialect:
        return self.runner.dialect

    # ------------------------------------------------------------------ connections

    def get_connection(self) -> ManagedConnection:
        return self.cache.get(self.ds)

    def close_connection(self, conn: ManagedConnection | None = None) -> None:
        """Release the thread's connection; kept while a transaction is open."""
        self.cache.close(self.ds)

    @contextmanager
    def _connection(self) -> Iterator[ManagedConnection]:
        conn = self.get_connection()
        try:
            yield conn
        finally:
            self.close_connection(conn)

    def check_transaction_supported(self, conn: ManagedConnection) -> None:
        """Raise ``UnsupportedError`` when the backend has no transactions."""
        if self._transaction_supported is None:
            self._transaction_supported = conn.metadata.supports_transactions
        if not self._transaction_supported:
            raise UnsupportedError("Transaction not supported for current database!").with_context(
                data_source=self.ds.name
            )

    # ------------------------------------------------------------------ raw SQL

    def query(self, sql: str, *params: Any, handler: RsHandler[T] | None = None) -> Any:
        """Run a query; entity list unless ``handler`` says otherwise."""
        handler = handler or EntityListHandler(self.case_insensitive)  # type: ignore[assignment]
        with self._connection() as conn:
            return self.executor.query(conn, sql, handler, *params)  # type: ignore[arg-type]

    def query_named(self, sql: str, params: Mapping[str, Any], handler: RsHandler[T] | None = None) -> Any:
        """Run a query written with ``:name`` parameters."""
        handler = handler or EntityListHandler(self.case_insensitive)  # type: ignore[assignment]
        with self._connection() as conn:
            return self.executor.query_named(conn, sql, handler, params)  # type: ignore[arg-type]

    def query_one(self, sql: str, *params: Any) -> Entity | None:
        return self.query(sql, *params, handler=EntityHandler(self.case_insensitive))

    def query_number(self, sql: str, *params: Any) -> Any:
        return self.query(sql, *params, handler=NumberHandler())

    def query_string(self, sql: str, *params: Any) -> str | None:
        return self.query(sql, *params, handler=StringHandler())

    def query_beans(self, model: type[M], sql: str, *params: Any) -> list[M]:
        return self.query(sql, *params, handler=BeanListHandler(model))

    def execute(self, sql: str, *params: Any) -> int:
        with self._connection() as conn:
            return self.executor.execute(conn, sql, *params)

    def execute_for_generated_key(self, sql: str, *params: Any) -> Any:
        with self._connection() as conn:
            return self.executor.execute_for_generated_key(conn, sql, *params)

    def execute_batch(self, sql: str, params_batch: Iterable[Sequence[Any]]) -> list[int]:
        with self._connection() as conn:
            return self.executor.execute_batch(conn, sql, params_batch)

    def execute_batch_sqls(self, *sqls: str) -> list[int]:
        with self._connection() as conn:
            return self.executor.execute_batch_sqls(conn, sqls)

    # ------------------------------------------------------------------ insert

    def insert(self, record: Entity) -> int:
        with self._connection() as conn:
            return self.runner.insert(conn, record)[0]

    def insert_all(self, records: Iterable[Entity]) -> list[int]:
        """Batch insert; records must share the first record's fields."""
        with self._connection() as conn:
            return self.runner.insert(conn, *records)

    def insert_or_update(self, record: Entity, *keys: str) -> int:
        with self._connection() as conn:
            return self.runner.insert_or_update(conn, record, *keys)

    def upsert(self, record: Entity, *keys: str) -> int:
        with self._connection() as conn:
            return self.runner.upsert(conn, record, *keys)

    def insert_for_generated_keys(self, record: Entity) -> list[Any]:
        with self._connection() as conn:
            return self.runner.insert_for_generated_keys(conn, record)

    def insert_for_generated_key(self, record: Entity) -> Any:
        with self._connection() as conn:
            return self.runner.insert_for_generated_key(conn, record)

    # ------------------------------------------------------------------ delete / update

    def delete(self, where: Entity) -> int:
        with self._connection() as conn:
            return self.runner.delete(conn, where)

    def delete_by(self, table_name: str, field: str, value: Any) -> int:
        return self.delete(Entity.create(table_name).set(field, value))

    def update(self, record: Entity, where: Entity) -> int:
        with self._connection() as conn:
            return self.runner.update(conn, record, where)

    # ------------------------------------------------------------------ find

    def get(self, where: Entity) -> Entity | None:
        """First row matching ``where``."""
        return self.find(where, EntityHandler(self.case_insensitive))

    def get_by(self, table_name: str, field: str, value: Any) -> Entity | None:
        return self.get(Entity.create(table_name).set(field, value))

    def find(
        self,
        where: Entity,
        handler: RsHandler[T] | None = None,
        *,
        fields: Iterable[str] | None = None,
    ) -> Any:
        """Rows matching ``where``; projected on ``fields`` or ``where.field_names``."""
        query = Query.of(where)
        if fields is not None:
            query.set_fields(fields)
        return self.find_query(query, handler)

    def find_query(self, query: Query, handler: RsHandler[T] | None = None) -> Any:
        with self._connection() as conn:
            return self.runner.find(conn, query, handler)

    def find_beans(self, where: Entity, model: type[M]) -> list[M]:
        return self.find(where, BeanListHandler(model))

    def find_all(self, where: Entity | str) -> list[Entity]:
        """Every row of a table, or every row matching ``where``."""
        if isinstance(where, str):
            where = Entity.create(where)
        return self.find(where)

    def find_by(self, table_name: str, field: str, value: Any) -> list[Entity]:
        return self.find(Entity.create(table_name).set(field, value))

    def find_by_conditions(self, table_name: str, *conditions: Condition) -> list[Entity]:
        return self.find_query(Query(conditions, table_name))

    def find_like(
        self,
        table_name: str,
        field: str,
        value: str,
        like_type: LikeType = LikeType.CONTAINS,
    ) -> list[Entity]:
        """Rows whose ``field`` starts with / ends with / contains ``value``."""
        return self.find(Entity.create(table_name).set(field, build_like_value(value, like_type, True)))

    # ------------------------------------------------------------------ count

    def count(self, where: Entity | Query) -> int:
        with self._connection() as conn:
            return self.runner.count(conn, where)

    def count_sql(self, sql: str | SqlBuilder, *params: Any) -> int:
        """Count the rows of a SELECT; a trailing ``ORDER BY`` is ignored."""
        builder = sql if isinstance(sql, SqlBuilder) else SqlBuilder.of(sql, *params)
        with self._connection() as conn:
            return self.runner.count_sql(conn, builder)

    # ------------------------------------------------------------------ paging

    def page(
        self,
        where: Entity,
        page: Page,
        handler: RsHandler[T] | None = None,
        *,
        fields: Iterable[str] | None = None,
    ) -> Any:
        """One page of rows matching ``where``; ``PageResult`` unless ``handler`` is given."""
        query = Query.of(where).set_page(page)
        if fields is not None:
            query.set_fields(fields)
        return self.page_query(query, handler)

    def page_query(self, query: Query, handler: RsHandler[T] | None = None) -> Any:
        with self._connection() as conn:
            return self.runner.page(conn, query, handler)

    def page_sql(
        self,
        sql: str | SqlBuilder,
        page: Page,
        *params: Any,
        handler: RsHandler[T] | None = None,
    ) -> Any:
        builder = sql if isinstance(sql, SqlBuilder) else SqlBuilder.of(sql, *params)
        with self._connection() as conn:
            return self.runner.page_sql(conn, builder, page, handler)

    def page_for_entity_list(self, where: Entity, page: Page) -> list[Entity]:
        """Rows of one page, without the total count query."""
        return self.page(where, page, EntityListHandler(self.case_insensitive))

    # ------------------------------------------------------------------ quoting

    def set_wrapper(self, wrapper: QuoteWrapper | str | None) -> AbstractDb:
        self.runner.set_wrapper(wrapper)
        return self

    def disable_wrapper(self) -> AbstractDb:
        self.runner.disable_wrapper()
        return self

    # ------------------------------------------------------------------ transactions

    def _begin(self, conn: ManagedConnection, level: IsolationLevel | None) -> bool:
        """Prepare ``conn`` for a transaction; returns the auto-commit flag to restore."""
        self.check_transaction_supported(conn)
        if level is not None and IsolationLevel(level) > conn.transaction_isolation:
            # only ever raised, never lowered
            conn.transaction_isolation = level
        auto_commit = conn.auto_commit
        if auto_commit:
            conn.auto_commit = False
        return auto_commit

    def _finish(self, conn: ManagedConnection, auto_commit: bool) -> None:
        try:
            if not conn.is_closed():
                conn.auto_commit = auto_commit
        except Exception as exc:
            logger.error("auto_commit_restore_failed", data_source=self.ds.name, error=str(exc))
            self._discard(conn)
        finally:
            self.close_connection(conn)

    def _discard(self, conn: ManagedConnection) -> None:
        """Close ``conn`` so pending work is dropped, never committed."""
        try:
            conn.close()
        except Exception as exc:
            logger.warning("connection_close_failed", data_source=self.ds.name, error=str(exc))

    def _rollback_quietly(self, conn: ManagedConnection) -> Exception | None:
        """Roll back, logging a failure; a connection that failed to roll back is closed."""
        try:
            conn.rollback()
        except Exception as exc:
            logger.warning("rollback_failed", data_source=self.ds.name, error=str(exc))
            self._discard(conn)
            return exc
        return None

    def _run_tx(self, func: Callable[[Any], T], level: IsolationLevel | None) -> Result[T]:
        try:
            conn = self.get_connection()
        except DbError as exc:
            return Err(exc)
        try:
            auto_commit = self._begin(conn, level)
        except DbError as exc:
            self.close_connection(conn)
            return Err(exc)

        try:
            value = func(self)
            conn.commit()
            return Ok(value)
        except Exception as exc:
            error = as_db_error(exc)
            rollback_error = self._rollback_quietly(conn)
            if rollback_error is not None:
                error.context.metadata["rollback_error"] = str(rollback_error)
            logger.warning(
                "transaction_rolled_back",
                data_source=self.ds.name,
                kind=error.kind.value,
                error=error.message,
            )
            return Err(error)
        except BaseException:
            self._rollback_quietly(conn)
            raise
        finally:
            self._finish(conn, auto_commit)

    def close(self) -> None:
        """Shut down an owned cache and close an owned data source."""
        if self._owns_cache:
            self.cache.shutdown()
        else:
            self.close_connection()
        if self._owns_ds:
            self.ds.close()

    def __enter__(self) -> Any:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(ds={self.ds.name!r}, dialect={self.dialect.name!r})"


class Db(AbstractDb):
    """Operations where every call is its own unit of work, plus ``tx``."""

    @classmethod
    def of(
        cls,
        ds: DataSource | str | None = None,
        dialect: str | Dialect | None = None,
        **kwargs: Any,
    ) -> Db:
        """``Db`` over ``ds``; a URL or ``None`` creates (and owns) a data source."""
        owns_ds = not isinstance(ds, DataSource)
        if owns_ds:
            ds = create_data_source(ds)  # type: ignore[arg-type]
        db = cls(ds, dialect, **kwargs)  # type: ignore[arg-type]
        db._owns_ds = owns_ds
        return db

    @classmethod
    def from_settings(cls, settings: DbSettings | None = None) -> Db:
        """``Db`` configured from ``DbSettings`` (environment by default)."""
        settings = settings or load_settings()
        ds = create_data_source(settings=settings)
        db = cls(ds, settings.dialect, sql_log=SqlLog.from_settings(settings))
        db._owns_ds = True
        if settings.quote_char:
            db.set_wrapper(settings.quote_char)
        return db

    def tx(self, func: Callable[[Db], T], level: IsolationLevel | None = None) -> Result[T]:
        """Run ``func(self)`` in one transaction.

        ``Ok(value)`` after commit; ``Err(DbError)`` after rollback, with
        non-database exceptions wrapped in ``TransactionError``.  The
        previous auto-commit flag is restored and the connection released
        either way.  Nested calls on one thread share the connection and
        therefore the transaction.
        """
        return self._run_tx(func, level)

    @contextmanager
    def transaction(self, level: IsolationLevel | None = None) -> Iterator[Db]:
        """``tx`` as a context manager; failures raise ``DbError``."""
        conn = self.get_connection()
        try:
            auto_commit = self._begin(conn, level)
        except BaseException:
            self.close_connection(conn)
            raise

        try:
            yield self
            conn.commit()
        except Exception as exc:
            error = as_db_error(exc)
            rollback_error = self._rollback_quietly(conn)
            if rollback_error is not None:
                error.context.metadata["rollback_error"] = str(rollback_error)
            if error is exc:
                raise
            raise error from exc
        except BaseException:
            self._rollback_quietly(conn)
            raise
        finally:
            self._finish(conn, auto_commit)

    def session(self) -> Session:
        """Session sharing this ``Db``'s data source and connection cache."""
        return Session(
            self.ds,
            copy.copy(self.dialect),
            cache=self.cache,
            sql_log=self.runner.sql_log,
            case_insensitive=self.case_insensitive,
        )


class Session(AbstractDb):
    """Manual transaction control.

    Example::

        with Session(ds) as session:
            session.begin_transaction()
            session.insert(Entity.create("user").set("name", "Alice"))
            sp = session.set_savepoint()
            session.insert(Entity.create("user").set("name", "Bob"))
            session.rollback_to(sp)      # Bob undone, transaction ended
    """

    @classmethod
    def of(cls, ds: DataSource, **kwargs: Any) -> Session:
        return cls(ds, **kwargs)

    def begin_transaction(self) -> None:
        conn = self.get_connection()
        self.check_transaction_supported(conn)
        conn.auto_commit = False
        logger.debug("transaction_begun", data_source=self.ds.name)

    def commit(self) -> None:
        conn = self.get_connection()
        try:
            conn.commit()
        finally:
            self._finish(conn, True)

    def rollback(self) -> None:
        """Roll back and end the transaction.

        When the rollback itself fails the connection is closed instead of
        being returned to auto-commit.
        """
        conn = self.get_connection()
        try:
            conn.rollback()
        except Exception:
            self._discard(conn)
            raise
        finally:
            self._finish(conn, True)

    def quiet_rollback(self) -> Result[None]:
        """Roll back; a failure is logged and returned, not raised."""
        try:
            self.rollback()
        except Exception as exc:
            logger.warning("rollback_failed", data_source=self.ds.name, error=str(exc))
            return Err(as_db_error(exc))
        return Ok(None)

    def set_savepoint(self, name: str | None = None) -> Savepoint:
        with self._connection() as conn:
            return conn.set_savepoint(name)

    def rollback_to(self, savepoint: Savepoint) -> None:
        """Roll back to ``savepoint``; the transaction then ends like ``rollback``."""
        conn = self.get_connection()
        try:
            conn.rollback_to(savepoint)
        except Exception:
            self._discard(conn)
            raise
        finally:
            self._finish(conn, True)

    def quiet_rollback_to(self, savepoint: Savepoint) -> Result[None]:
        try:
            self.rollback_to(savepoint)
        except Exception as exc:
            logger.warning("rollback_failed", data_source=self.ds.name, savepoint=savepoint.name, error=str(exc))
            return Err(as_db_error(exc))
        return Ok(None)

    def release_savepoint(self, savepoint: Savepoint) -> None:
        with self._connection() as conn:
            conn.release_savepoint(savepoint)

    def set_transaction_isolation(self, level: IsolationLevel) -> None:
        """Set the isolation level; ``UnsupportedError`` when the backend lacks it.

        Outside a transaction the connection is released afterwards, so call
        this after ``begin_transaction`` for the level to apply to its work.
        """
        with self._connection() as conn:
            conn.transaction_isolation = level

    def is_transaction(self) -> bool:
        conn = self.cache.cached(self.ds)
        return conn is not None and not conn.is_closed() and not conn.auto_commit

    def tx(self, func: Callable[[Session], T], level: IsolationLevel | None = None) -> Result[T]:
        """Run ``func(self)`` in one transaction; same contract as ``Db.tx``."""
        return self._run_tx(func, level)

    def close(self) -> None:
        if self.is_transaction():
            logger.warning("session_closed_in_transaction", data_source=self.ds.name)
            self.quiet_rollback()
        super().close()

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        try:
            if self.is_transaction():
                if exc_type is None:
                    self.commit()
                else:
                    self.quiet_rollback()
        finally:
            self.close()


__all__ = [
    "AbstractDb",
    "Db",
    "Session",
]
