"""
Database metadata: tables, columns, primary keys and indexes.

Reflection goes through ``sqlalchemy.inspect``.  A ``PooledDataSource``
is inspected through its own engine; any other data source gets a
throwaway engine whose connections come from ``ds.get_connection()``.

Manifesto:
    - **Read-only:** nothing here writes to the database
    - **Missing is empty:** an unknown table has no columns, not an error
    - **Driver errors are DbErrors:** reflection failures carry a kind

Examples:
    >>> from entitydb.meta import get_tables, get_table_meta
    >>> get_tables(ds)
    ['user']
    >>> get_table_meta(ds, "user").primary_keys
    ['id']

Tags:
    metadata, reflection, sqlalchemy, entitydb

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine, Inspector
from sqlalchemy.exc import DBAPIError, NoSuchTableError
from sqlalchemy.pool import NullPool

from entitydb.core.errors import UnsupportedError, translate_driver_error
from entitydb.core.logging import get_logger
from entitydb.ds.base import DataSource
from entitydb.entity import Entity

logger = get_logger(__name__)

# entitydb dialect name -> SQLAlchemy URL for engines built on a foreign data source
_ENGINE_URLS = {
    "sqlite": "sqlite://",
    "postgresql": "postgresql://",
    "mysql": "mysql://",
    "oracle": "oracle://",
}


@dataclass(frozen=True)
class ColumnMeta:
    name: str
    type_name: str
    nullable: bool = True
    default: str | None = None
    autoincrement: bool = False
    comment: str | None = None


@dataclass(frozen=True)
class IndexMeta:
    name: str
    columns: list[str]
    unique: bool = False


@dataclass
class TableMeta:
    """Structure of one table; ``columns`` keep the table's column order."""

    name: str
    schema: str | None = None
    comment: str | None = None
    columns: list[ColumnMeta] = field(default_factory=list)
    primary_keys: list[str] = field(default_factory=list)
    indexes: dict[str, IndexMeta] = field(default_factory=dict)

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    def column(self, name: str) -> ColumnMeta | None:
        return next((column for column in self.columns if column.name == name), None)

    def is_primary_key(self, name: str) -> bool:
        return name in self.primary_keys


def _engine_for(ds: DataSource) -> Engine:
    url = _ENGINE_URLS.get(ds.dialect.name)
    if url is None:
        raise UnsupportedError(f"Metadata not supported for dialect [{ds.dialect.name}]").with_context(
            data_source=ds.name
        )
    return create_engine(url, creator=lambda: ds.get_connection().raw, poolclass=NullPool)


@contextmanager
def _inspector(ds: DataSource) -> Iterator[Inspector]:
    engine = getattr(ds, "engine", None)
    owned = not isinstance(engine, Engine)
    if owned:
        engine = _engine_for(ds)
    try:
        yield inspect(engine)
    except DBAPIError as exc:
        raise translate_driver_error(exc.orig if exc.orig is not None else exc) from exc
    finally:
        if owned:
            engine.dispose()


def get_tables(ds: DataSource, schema: str | None = None, *, views: bool = False) -> list[str]:
    """Table names in ``schema`` (the default schema when ``None``), views optional."""
    with _inspector(ds) as inspector:
        names = list(inspector.get_table_names(schema=schema))
        if views:
            names.extend(inspector.get_view_names(schema=schema))
    return names


def get_column_names(ds: DataSource, table_name: str, schema: str | None = None) -> list[str]:
    with _inspector(ds) as inspector:
        try:
            return [column["name"] for column in inspector.get_columns(table_name, schema=schema)]
        except NoSuchTableError:
            return []


def column_labels(cursor: Any) -> list[str]:
    """Column labels of an executed DB-API cursor."""
    return [description[0] for description in cursor.description or ()]


def get_primary_keys(ds: DataSource, table_name: str, schema: str | None = None) -> list[str]:
    with _inspector(ds) as inspector:
        try:
            constraint = inspector.get_pk_constraint(table_name, schema=schema)
        except NoSuchTableError:
            return []
    return list(constraint.get("constrained_columns") or [])


def create_limited_entity(ds: DataSource, table_name: str) -> Entity:
    """Empty ``Entity`` for ``table_name`` whose field names are the table's columns."""
    return Entity.create(table_name).set_field_names(*get_column_names(ds, table_name))


def get_table_meta(ds: DataSource, table_name: str, schema: str | None = None) -> TableMeta:
    """Columns, primary keys, indexes and comment of a table.

    An unknown table gives a ``TableMeta`` with no columns.
    """
    meta = TableMeta(name=table_name, schema=schema)
    with _inspector(ds) as inspector:
        try:
            columns = inspector.get_columns(table_name, schema=schema)
        except NoSuchTableError:
            return meta

        for column in columns:
            default = column.get("default")
            meta.columns.append(
                ColumnMeta(
                    name=column["name"],
                    type_name=str(column["type"]),
                    nullable=bool(column.get("nullable", True)),
                    default=None if default is None else str(default),
                    autoincrement=column.get("autoincrement") is True,
                    comment=column.get("comment"),
                )
            )
        meta.primary_keys.extend(
            inspector.get_pk_constraint(table_name, schema=schema).get("constrained_columns") or []
        )
        for index in inspector.get_indexes(table_name, schema=schema):
            name = index.get("name")
            if name:
                meta.indexes[name] = IndexMeta(
                    name=name,
                    columns=[c for c in index.get("column_names", []) if c],
                    unique=bool(index.get("unique")),
                )
        try:
            meta.comment = inspector.get_table_comment(table_name, schema=schema).get("text")
        except NotImplementedError:
            pass

    logger.debug("table_meta_loaded", data_source=ds.name, table=table_name, columns=len(meta.columns))
    return meta


__all__ = [
    "ColumnMeta",
    "IndexMeta",
    "TableMeta",
    "column_labels",
    "create_limited_entity",
    "get_column_names",
    "get_primary_keys",
    "get_table_meta",
    "get_tables",
]
